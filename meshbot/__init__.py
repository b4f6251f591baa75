"""meshbot - MESH, the financial BPO assistant."""

__version__ = "0.1.0"
__logo__ = "🧮"
