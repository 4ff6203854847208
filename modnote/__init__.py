"""
ModNote content core.

Turns videos, web pages, PDFs, images and audio into clean text, and
assembles source-isolated context from stored notes for question answering.
"""

__version__ = "0.1.0"
