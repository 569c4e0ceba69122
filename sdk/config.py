from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional
import os

class GradingPolicy(BaseModel):
    """Timing and scoring constants for replay and grading."""
    tick_ms: int = Field(100, gt=0)
    check_interval_ms: int = Field(3000, gt=0)
    text_penalty: int = Field(10, ge=0)
    pointer_penalty: int = Field(5, ge=0)
    pointer_window_ms: int = Field(150, gt=0)
    pointer_tolerance_px: float = Field(50.0, ge=0)

class SessionPolicy(BaseModel):
    """Verification gate for test sessions."""
    min_confidence: int = Field(70, ge=0, le=100)
    settle_delay_ms: int = Field(1000, ge=0)
    require_verification: bool = True
    hold_camera_while_active: bool = False

class VerifierSettings(BaseModel):
    api_key: Optional[str] = Field(default_factory=lambda: os.getenv('LESSONCAST_VERIFIER_API_KEY') or None)
    model: str = Field(default_factory=lambda: os.getenv('LESSONCAST_VERIFIER_MODEL', 'gemini-1.5-flash'))
    endpoint: str = Field(default_factory=lambda: os.getenv(
        'LESSONCAST_VERIFIER_ENDPOINT', 'https://generativelanguage.googleapis.com/v1beta'))
    timeout_s: float = 30.0

class AppConfig(BaseModel):
    grading: GradingPolicy = Field(default_factory=GradingPolicy)
    session: SessionPolicy = Field(default_factory=SessionPolicy)
    verifier: VerifierSettings = Field(default_factory=VerifierSettings)
    input_queue_size: int = Field(10_000, gt=0)
    created_by: str = Field(default_factory=lambda: os.getenv('LESSONCAST_USER', 'teacher'))
    plugins: dict = Field(default_factory=lambda: {
        "media": os.getenv('LESSONCAST_MEDIA', "plugins.media.stub.impl:StubMedia"),
        "verifier": "plugins.verifiers.gemini.impl:GeminiVerifier",
        "store": os.getenv('LESSONCAST_STORE', "plugins.stores.json_dir.impl:JsonLessonStore"),
    })

def load_config() -> AppConfig:
    """Build a fresh config from the current environment."""
    return AppConfig()

SDK_CONFIG = load_config()
