"""
Entry point for running sora-assistant as a module.

Usage: python -m sora_assistant
"""

from sora_assistant.cli import main

if __name__ == "__main__":
    main()
