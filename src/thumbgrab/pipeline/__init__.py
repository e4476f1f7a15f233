"""
Pipeline module for thumbnail discovery and export.

Provides the stages (generation, probing, trimming, archiving), output
naming, and the coordinator that chains them. The stages can be used
directly by scripts or other orchestration code.
"""
