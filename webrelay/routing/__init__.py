from .app import App
from .rules import Pass

__all__ = ["App", "Pass"]
