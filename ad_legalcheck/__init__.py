# -*- coding: utf-8 -*-
"""Two-stage Gemini legal check for advertisement text and images."""

__version__ = "2.0.0"
