# AGPL-3.0 License

"""
Run reports: the aggregate result, console rendering and the JSON artifact.
"""
