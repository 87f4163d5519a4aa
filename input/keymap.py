# ========================= input/keymap.py =========================
import pygame
from typing import Dict

# 預設配置：電腦鍵 -> 遊戲欄位的 key（1..15），由左到右對應 COLUMN_ORDER
DEFAULT_KEYMAP: Dict[int, int] = {
    pygame.K_a: 1,
    pygame.K_w: 9,
    pygame.K_s: 2,
    pygame.K_e: 10,
    pygame.K_d: 3,
    pygame.K_f: 4,
    pygame.K_t: 11,
    pygame.K_g: 5,
    pygame.K_y: 12,
    pygame.K_h: 6,
    pygame.K_u: 13,
    pygame.K_j: 7,
    pygame.K_i: 14,
    pygame.K_k: 8,
    pygame.K_o: 15,
}


def name_to_keycode(name: str) -> int:
    """把 'a', 'comma' 等名稱轉回 pygame 的 keycode。"""
    try:
        return pygame.key.key_code(name)
    except ValueError:
        # 允許純數字 keycode
        try:
            return int(name)
        except ValueError:
            raise ValueError(f"Unknown key name: {name}")


def deserialize_keymap(obj: dict) -> Dict[int, int]:
    """從名稱->欄位 key 的 JSON 還原為 keycode->key。"""
    out: Dict[int, int] = {}
    for kname, key in obj.items():
        key = int(key)
        if not 1 <= key <= 15:
            raise ValueError(f"column key {key} outside [1, 15]")
        out[name_to_keycode(str(kname))] = key
    return out
