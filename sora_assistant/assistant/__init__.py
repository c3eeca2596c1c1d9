"""
Activation loop for sora-assistant.

Listen for "Hey Sora", look through the camera, describe what is there.
"""

from sora_assistant.assistant.core import ActivationOrchestrator, ActivationPhase, ActivationResult

__all__ = ["ActivationOrchestrator", "ActivationPhase", "ActivationResult"]
