"""Domain models and entities.

Pure data structures (Pydantic v2) and the error hierarchy. The domain knows
nothing about zip files, mounts, Mach-O parsing or the CLI.
"""
