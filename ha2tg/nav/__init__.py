"""Navigation package for ha2tg.

Compact button payloads, dialogue states, the view model, screen builders
and the router that ties them together.
"""
from ha2tg.nav.payload import DecodeError, decode, decode_or_home, encode
from ha2tg.nav.view import View

__all__ = [
    "DecodeError",
    "decode",
    "decode_or_home",
    "encode",
    "View",
]
