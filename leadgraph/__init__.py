"""
leadgraph - projection and reporting layer over the lead knowledge graph.
"""

__version__ = "1.0.0"
