"""Core of ha2tg: configuration, runtime context, sessions and background loops."""
