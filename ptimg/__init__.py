"""
ptimg — descriptor model, region-copy language and compositor

This package provides:
- Descriptor/Resource/View: the decoded ptimg descriptor (read-only)
- parse_instruction/format_instruction: the "key:w,h+sx,sy>dx,dy" copy language
- restore/restore_view: repaint destination canvases from source pixel buffers,
  in instruction order, with silent clipping at the canvas edges
- PtimgError and subclasses for parse, resolution, bounds and descriptor failures

No I/O happens here; callers hand in decoded descriptors and numpy buffers.
"""
from .compositor import apply_instruction, make_resolver, new_canvas, restore, restore_view, single_source_resolver
from .descriptor import Descriptor, Resource, View, load_descriptor
from .errors import BoundsError, DescriptorError, ParseError, PtimgError, ResolutionError
from .grammar import Instruction, Vec2, format_instruction, parse_instruction

__all__ = [
    "apply_instruction",
    "make_resolver",
    "new_canvas",
    "restore",
    "restore_view",
    "single_source_resolver",
    "Descriptor",
    "Resource",
    "View",
    "load_descriptor",
    "BoundsError",
    "DescriptorError",
    "ParseError",
    "PtimgError",
    "ResolutionError",
    "Instruction",
    "Vec2",
    "format_instruction",
    "parse_instruction",
]
