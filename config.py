# ========================= config.py =========================
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class EditorConfig:
    default_velocity: int = 100
    pencil_duration: float = 1.0
    resize_handle_beats: float = 0.15   # 音符尾端可拖曳調整長度的範圍
    preview_min_s: float = 0.1
    preview_max_s: float = 4.0


@dataclass
class HistoryConfig:
    limit: int = 50


@dataclass
class PlaybackConfig:
    tolerance_beats: float = 0.15   # 兩次 tick 之間不漏音的視窗
    tail_beats: float = 0.5         # 歌曲結尾多留的拍數
    tone_min_s: float = 0.1
    tone_max_s: float = 4.0


@dataclass
class GameConfig:
    lookahead_beats: float = 2.0
    fall_speed: float = 60.0        # board % per second
    hit_line: float = 85.0          # board % (0 = top, 100 = bottom)
    hit_window: float = 15.0        # hit zone = hit_line ± hit_window
    perfect: float = 0.05           # distance / hit_window
    great: float = 0.10
    good: float = 0.50
    miss_linger_ms: int = 500
    hit_linger_ms: int = 300
    over_grace_ms: int = 2000
    hit_sound: bool = True
    tone_min_s: float = 0.1
    tone_max_s: float = 4.0


@dataclass
class RenderConfig:
    window_w: int = 1600
    window_h: int = 900
    key_w: int = 72                 # 編輯器左側琴鍵寬度
    row_h: int = 36
    beat_w: float = 120.0           # 每拍像素
    fps: int = 60


@dataclass
class AudioConfig:
    program: int = 0                # Acoustic Grand
    device_id: Optional[int] = None


@dataclass
class StorageConfig:
    library_dir: str = "songs"
    keymap_path: str = "keymap.json"   # 電腦鍵 -> 欄位，可選


@dataclass
class AppConfig:
    editor: EditorConfig = field(default_factory=EditorConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    game: GameConfig = field(default_factory=GameConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
