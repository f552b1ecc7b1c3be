"""
BlockTranscoding: stop playback that is being transcoded above a resolution ceiling.
"""

__version__ = "1.0.0"
