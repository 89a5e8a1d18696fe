"""
Pytest configuration file.

Puts the project root on the Python path so the top-level modules
(main, feed_upload, config, utils) import the same way they do when the
service runs.
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))
