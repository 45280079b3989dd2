"""Rendering backends for the map surface."""

from .base import Point, Renderer
from .pil_backend import PilRenderer
from .recording import DrawCall, RecordingRenderer

__all__ = ["Point", "Renderer", "PilRenderer", "RecordingRenderer", "DrawCall"]
