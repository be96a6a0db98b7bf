from whisper_stt.engine.fake import FakeEngine
from whisper_stt.engine.protocol import Engine

__all__ = ["Engine", "FakeEngine"]
