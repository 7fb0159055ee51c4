#!/usr/bin/env python3
"""
Streamboard - Command Line Player

Play one or more files through the engine, crossfading between them:
    python main.py intro.mp3 loop.wav --loop 2 --volume 80
"""

import argparse
import logging
import sys
from pathlib import Path

logging.basicConfig(
    filename="debug.log",
    filemode="a",
    level=logging.DEBUG,
    format="[%(name)s] %(message)s",
)

from streamboard import (
    AudioEngine,
    EngineState,
    EventName,
    MonotonicClock,
    Track,
    create_backend,
    load_config,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Play audio files through the streamboard engine.")
    parser.add_argument("files", nargs="+", help="audio files to play in order")
    parser.add_argument("--volume", type=float, help="volume 0-100")
    parser.add_argument("--loop", type=int, help="extra replays of each file (-1 = forever)")
    parser.add_argument("--fade-in", type=float, help="fade-in seconds for the first file")
    parser.add_argument("--crossfade", type=float, help="crossfade seconds between files")
    parser.add_argument("--config", help="settings file (defaults to soundboard_config.json)")
    parser.add_argument(
        "--simulate", action="store_true", help="use the silent simulated backend"
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings, _ = load_config(args.config)
    if args.fade_in is not None:
        settings.fade_in_duration = args.fade_in
    if args.crossfade is not None:
        settings.crossfade_duration = args.crossfade

    clock = MonotonicClock()
    backend = create_backend("simulated" if args.simulate else "sounddevice", clock)
    engine = AudioEngine(backend, clock, settings)
    if args.volume is not None:
        engine.set_volume(args.volume)

    tracks = [Track(id=str(i), title=Path(f).stem, audio_url=f) for i, f in enumerate(args.files)]
    queue = list(tracks)

    def on_track_change(event):
        if event.track is not None:
            print(f"Now playing: {event.track.title}")

    def on_last_pass():
        loop = engine.loop
        return not loop.enabled or (not loop.is_infinite and loop.current >= loop.count)

    def on_time_update(event):
        # Start the next file one crossfade window before the current one ends
        if len(queue) > 1 and engine.state is EngineState.PLAYING and not engine.is_crossfading:
            if not on_last_pass():
                return
            if event.duration - event.current_time <= settings.crossfade_duration:
                queue.pop(0)
                engine.play_track(queue[0], crossfade=True)

    def on_error(event):
        print(f"Error: {event.message}", file=sys.stderr)

    engine.on(EventName.TRACK_CHANGE, on_track_change)
    engine.on(EventName.TIME_UPDATE, on_time_update)
    engine.on(EventName.ERROR, on_error)

    if args.loop is not None:
        engine.set_looping(args.loop != 0, args.loop)

    future = engine.play_track(queue[0])
    if future.exception() is not None:
        engine.destroy()
        return 1

    try:
        clock.run_forever(stop_when=lambda: engine.state is EngineState.IDLE)
    except KeyboardInterrupt:
        engine.stop()
    finally:
        engine.destroy()
    return 0


if __name__ == "__main__":
    sys.exit(main())
