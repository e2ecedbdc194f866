"""depimpact: which files does a change set affect?"""

__version__ = "0.1.0"
