"""
Voice turn pipeline: audio buffering, turn state and the per-connection session.
"""

from interview_voice.voice.audio_buffer import AudioFrameBuffer, SilencePolicy, mean_energy
from interview_voice.voice.session import VoiceSession
from interview_voice.voice.turn_state import Turn, TurnStateMachine

__all__ = [
    'AudioFrameBuffer',
    'SilencePolicy',
    'mean_energy',
    'VoiceSession',
    'Turn',
    'TurnStateMachine',
]
