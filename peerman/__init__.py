"""
peerman - Yggdrasil Peer Link Manager

A small daemon that watches a mesh node's peer connections and toggles
a set of fallback peers depending on whether a trusted router is
reachable on the local network segment.

This package contains:
- admin/     : Admin socket protocol codec and client
- mesh/      : Peer snapshot, locality detection and reconciliation
- config.py  : Configuration loading and validation
- main.py    : Control loop and daemon entry point
"""

__version__ = "0.1.0"
__author__ = "peerman Project"

# Length of a node public key as reported by the admin socket (hex)
PUBLIC_KEY_LENGTH = 64
