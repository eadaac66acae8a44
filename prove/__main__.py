# AGPL-3.0 License

from prove.cli import run

if __name__ == "__main__":
    run()
