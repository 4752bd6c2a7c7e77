from __future__ import annotations
import logging
import os
import queue
import subprocess
import threading
import time
from typing import Optional

logger = logging.getLogger(__name__)


class TTSEngine:
    """Background speaker for rep counts and cues. Uses macOS `say` when available, else pyttsx3."""

    def __init__(self, prefer_mac_say: bool = True):
        self.prefer_mac_say = prefer_mac_say and (os.uname().sysname == "Darwin")
        self.q: "queue.Queue[str]" = queue.Queue()
        self._stop_event = threading.Event()
        self._pyttsx3 = None
        self._pending = 0
        self._pending_lock = threading.Lock()
        self.worker = threading.Thread(target=self._run, daemon=True)
        self.worker.start()

    def _ensure_pyttsx3(self):
        if self._pyttsx3 is None:
            import pyttsx3  # lazy import, the driver init is slow
            self._pyttsx3 = pyttsx3.init()

    def _speak(self, text: str):
        if self.prefer_mac_say:
            subprocess.run(["say", text], check=False)
            return
        self._ensure_pyttsx3()
        self._pyttsx3.say(text)
        self._pyttsx3.runAndWait()

    def _run(self):
        while not self._stop_event.is_set():
            try:
                text = self.q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._speak(text)
            except Exception:
                logger.warning("speech failed for %r", text, exc_info=True)
            finally:
                with self._pending_lock:
                    self._pending -= 1
                self.q.task_done()

    def say(self, text: str):
        if not text:
            return
        with self._pending_lock:
            self._pending += 1
        self.q.put(text)

    def is_speaking(self) -> bool:
        return self._pending > 0

    def wait_until_idle(self, timeout: Optional[float] = None):
        """Block until queued speech is done, or until `timeout` seconds pass."""
        t0 = time.time()
        while self.is_speaking():
            if timeout is not None and (time.time() - t0) >= timeout:
                break
            time.sleep(0.05)

    def shutdown(self, timeout: float = 1.0):
        self._stop_event.set()
        if self.worker is not threading.current_thread():
            self.worker.join(timeout=timeout)
