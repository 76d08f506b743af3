"""Sparse template-based monocular reconstruction of deformable surfaces: tracking, mesh optimisation and shared state."""

__version__ = "0.1.0"