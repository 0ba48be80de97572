"""
AI Shortcuts - settings, credentials and model defaults for OpenAI-compatible APIs.

Quick Start:
    pip install -e .
    aishortcuts auth set-key
    aishortcuts models defaults
"""

from aishortcuts.cli.cli import main

if __name__ == "__main__":
    main()
