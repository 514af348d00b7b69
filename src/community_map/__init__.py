"""Community Map Proximity and Clustering Engine.

Turns the community platform's member and event feeds into a map: distance
filtering around the viewer, marker selection and search, zoom-dependent
clustering, and the popup card state shown on top of it all.
"""

__version__ = "0.1.0"

__author__ = "community_map contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
