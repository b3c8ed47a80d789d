"""
Pytest configuration shared by the whole tree.
Set the environment before anything imports core.config.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("JWT_SECRET", "test-secret")
