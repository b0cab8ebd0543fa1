"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading

from config import JsonConfigStore, default_live_config
from errors import ERROR_MESSAGES, MissingCredentialError
from live_client import DashscopeLiveClient
from models import ConnectionState, Sender
from recorder import SoundDeviceFrameSource
from session_controller import LiveSessionController
from transcript import Transcript

HELP = "Commands: p = pause/resume, s = stats, c = clear transcript, q = quit"


class App:
    def __init__(self, config_store: JsonConfigStore | None = None) -> None:
        self.config_store = config_store or JsonConfigStore()
        live_config = default_live_config()
        self._printed: set[str] = set()
        self._closed = threading.Event()
        self.controller = LiveSessionController(
            frame_source=SoundDeviceFrameSource(
                sample_rate=live_config.input_rate,
                block_size=live_config.block_size,
            ),
            live_client=DashscopeLiveClient(),
            config=live_config,
            on_state_change=self._on_state_change,
            on_transcript=self._on_transcript,
            on_error=self._on_error,
        )

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: ConnectionState, to_state: ConnectionState) -> None:
        print(f"[{to_state.value}]", flush=True)
        if to_state == ConnectionState.DISCONNECTED:
            if not self._closed.is_set() and from_state != ConnectionState.CONNECTING:
                print("Session ended.", flush=True)
            self._closed.set()

    def _on_transcript(self, items: Transcript) -> None:
        for item in items:
            if item.is_partial or item.id in self._printed:
                continue
            self._printed.add(item.id)
            speaker = "you" if item.sender == Sender.USER else "pulse"
            print(f"{speaker:>5}: {item.text.strip()}", flush=True)

    def _on_error(self, code: str, message: str) -> None:
        print(f"error: {ERROR_MESSAGES.get(code, code)} ({message})", file=sys.stderr, flush=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _ensure_api_key(self) -> str:
        api_key = self.config_store.get_api_key()
        if api_key:
            return api_key
        api_key = input("DashScope API key: ").strip()
        if api_key:
            self.config_store.set_api_key(api_key)
        return api_key

    def run(self) -> int:
        try:
            connected = self.controller.connect(self._ensure_api_key())
        except MissingCredentialError as exc:
            print(f"error: {exc.message}", file=sys.stderr)
            return 1
        if not connected:
            return 1

        print(HELP, flush=True)
        reader = threading.Thread(target=self._read_commands, name="pulse-stdin", daemon=True)
        reader.start()
        try:
            while not self._closed.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.controller.disconnect()
        return 0

    def _read_commands(self) -> None:
        """Handle stdin commands until quit or EOF; the session ending does not wait on input."""
        try:
            for line in sys.stdin:
                if self._closed.is_set():
                    return
                command = line.strip().lower()
                if command == "q":
                    break
                if command == "p":
                    self.controller.set_paused(not self.controller.paused)
                    print("paused" if self.controller.paused else "resumed", flush=True)
                elif command == "s":
                    stats = self.controller.stats()
                    print(
                        f"you: {stats.user_chars} chars, pulse: {stats.model_chars} chars, "
                        f"{stats.elapsed_s:.0f}s connected",
                        flush=True,
                    )
                elif command == "c":
                    self.controller.clear_transcript()
                    self._printed.clear()
                elif command:
                    print(HELP, flush=True)
        finally:
            self._closed.set()


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return App().run()


if __name__ == "__main__":
    raise SystemExit(main())
