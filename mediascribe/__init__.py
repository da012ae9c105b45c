"""
mediascribe: upload audio or video, get a text transcript back.

Video is converted to compact mono audio with ffmpeg, oversized audio is split
into time-bounded segments, each segment is transcribed by the OpenAI speech
API, and the joined transcript is written next to the uploads.
"""

__version__ = "0.1.0"
