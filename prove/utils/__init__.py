# AGPL-3.0 License

"""
Leaf utilities: subprocess execution, git inspection and coverage analysis.
"""
