"""Core constants for the Whisper STT pipeline.

Whisper models consume 16kHz mono audio in 30 second windows, turned into
log-mel frames with a 25ms window and a 10ms hop.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM

# Feature extraction
N_FFT: int = 400  # 25ms window
HOP_LENGTH: int = 160  # 10ms hop
CHUNK_LENGTH: int = 30  # seconds per model window
N_SAMPLES: int = CHUNK_LENGTH * SAMPLE_RATE  # 480000
N_FRAMES: int = N_SAMPLES // HOP_LENGTH  # 3000 mel frames per window
SUPPORTED_N_MELS: tuple[int, ...] = (80, 128)

# Long audio windows
WINDOW_OVERLAP: float = 1.0  # seconds shared by consecutive windows

# Timestamp tokens advance in 20ms steps
TIME_PRECISION: float = 0.02
# End estimate for a trailing segment that never got a closing timestamp
TRAILING_SEGMENT_SECONDS: float = 0.5

# Streaming service buffering
CHUNK_SAMPLES: int = 80000  # transcribe every 5s of buffered audio
CHUNK_BYTES: int = 160000  # 80000 * 2 bytes
MIN_AUDIO_BYTES: int = 32000  # 1 second of PCM16

# Default model
MODEL_NAME: str = "tiny"
