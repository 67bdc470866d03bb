# focuslog type definitions
# Rev 0.2.0

from __future__ import annotations
from typing import Literal

# Which handle of a timeline block is being dragged
ResizeEdge = Literal["top", "bottom"]
