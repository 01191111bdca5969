"""
packsync - Keep compiled packs and their JSON source trees in sync.

Actions:
- pack: Compile source JSON files into packs
- unpack: Extract packs into source JSON files
- clean: Normalize source JSON files in place
"""

__version__ = "0.1.0"
