"""Code shared by the tools under ``tools/python``."""
