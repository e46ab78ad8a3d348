"""
Interview Voice - real-time voice interview pipeline

Turns a continuous microphone stream into a spoken AI interviewer reply:
capture → transcription → generation → synthesis, with barge-in support.
"""

__version__ = "0.1.0"
