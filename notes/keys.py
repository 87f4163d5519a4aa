# notes/keys.py
# 15 鍵佈局：1..8 白鍵，9..15 黑鍵
from notes.model import KEY_MIN, KEY_MAX

KEY_PITCH = {
    1: 60, 2: 62, 3: 64, 4: 65, 5: 67, 6: 69, 7: 71, 8: 72,
    9: 61, 10: 63, 11: 66, 12: 68, 13: 70, 14: 72, 15: 73,
}

KEY_NAMES = {
    1: "C4", 2: "D4", 3: "E4", 4: "F4", 5: "G4", 6: "A4", 7: "B4", 8: "C5",
    9: "C#4", 10: "D#4", 11: "F#4", 12: "G#4", 13: "A#4", 14: "B#4", 15: "C#5",
}

# 畫面上由左到右的欄位順序
COLUMN_ORDER = (1, 9, 2, 10, 3, 4, 11, 5, 12, 6, 13, 7, 14, 8, 15)

BLACK_KEYS = frozenset(range(9, 16))


def key_to_pitch(key: int) -> int:
    try:
        return KEY_PITCH[key]
    except KeyError:
        raise ValueError(f"key {key!r} outside [{KEY_MIN}, {KEY_MAX}]")


def pitch_to_key(pitch: int) -> int:
    """Fold a MIDI pitch into the 60..73 window and return the nearest key."""
    p = int(pitch)
    while p < 60:
        p += 12
    while p > 73:
        p -= 12
    # 白鍵優先（72 同時對應 8 與 14）
    return min(KEY_PITCH, key=lambda k: (abs(KEY_PITCH[k] - p), k in BLACK_KEYS, k))


def key_label(key: int) -> str:
    return KEY_NAMES.get(key, str(key))


def column_of(key: int) -> int:
    return COLUMN_ORDER.index(key)


def is_black(key: int) -> bool:
    return key in BLACK_KEYS
