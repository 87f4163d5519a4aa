# main.py
import sys, os
sys.path.append(os.path.dirname(__file__))  # 確保能找到 config.py

from utils.crashlog import setup_crashlog, log_exception, log_dir
setup_crashlog()

import argparse
import logging, traceback
from logging.handlers import RotatingFileHandler

from config import AppConfig, GameConfig, StorageConfig
from notes.errors import TimelineError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _init_logging(level=logging.DEBUG):
    logs = log_dir()
    log_path = os.path.join(logs, "app.log")

    if logging.getLogger().handlers:
        return

    logging.basicConfig(level=level, format=LOG_FORMAT, encoding="utf-8")
    try:
        fh = RotatingFileHandler(log_path, maxBytes=2*1024*1024, backupCount=3, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(fh)
    except OSError:
        logging.warning("file logging disabled: cannot open %s", log_path)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pi-tiles", description="15-key timeline editor and falling-tiles game")
    ap.add_argument('--library', default=StorageConfig.library_dir, help="song library directory")
    ap.add_argument('--bpm', type=int, default=None, help="tempo for the opening song")
    ap.add_argument('--fall-speed', type=float, default=GameConfig.fall_speed, help="tile speed, board %% per second")
    ap.add_argument('--import', dest='import_path', default=None, help="open a song JSON or MIDI file at start")
    ap.add_argument('--game', action='store_true', help="start straight in game mode")
    ap.add_argument('--quiet', action='store_true', help="console logs at INFO instead of DEBUG")
    return ap


def build_config(args) -> AppConfig:
    if args.fall_speed <= 0:
        raise SystemExit("--fall-speed must be > 0")
    return AppConfig(
        game=GameConfig(fall_speed=args.fall_speed),
        storage=StorageConfig(library_dir=args.library),
    )


def load_initial_song(args):
    from midi.parser import parse_midi_to_song
    from notes.ops import demo_song, update_song
    from notes.record import import_song

    song = None
    if args.import_path:
        ext = os.path.splitext(args.import_path)[1].lower()
        song = parse_midi_to_song(args.import_path) if ext in (".mid", ".midi") else import_song(args.import_path)
    if args.bpm is not None:
        song = update_song(song or demo_song(), bpm=args.bpm)
    return song


def main(argv=None):
    args = build_parser().parse_args(argv)
    _init_logging(logging.INFO if args.quiet else logging.DEBUG)
    logging.info("應用程式啟動")

    cfg = build_config(args)
    try:
        song = load_initial_song(args)
    except (OSError, EOFError, ValueError, TimelineError) as e:
        logging.error("cannot open %s: %s", args.import_path, e)
        song = None

    from app import App
    app = App(cfg, song=song)
    if args.game:
        app.enter_game()
    app.run()


if __name__ == '__main__':
    try:
        main()
    except Exception as e:
        try:
            log_exception("Top-level exception", e)
        except OSError:
            pass
        logging.error("未捕捉的例外：%s", e, exc_info=True)
        print("程式發生錯誤，請到 logs/ 資料夾看 app.log 與 error-*.txt")
        traceback.print_exc()
