"""Shared helpers."""

from .json_parser import clean_json_string, extract_json_from_text, load_json_object

__all__ = [
    "clean_json_string",
    "extract_json_from_text",
    "load_json_object",
]
