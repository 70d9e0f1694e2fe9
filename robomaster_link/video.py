"""Video ingestion: pumps decoded frames from a media decoder into a feed.

Decoding is blocking, so frames are read on a dedicated daemon thread and
published from there; :class:`~robomaster_link.feed.Feed` is thread-safe.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generator, Iterator, Optional

from .core.protocols import FrameSource
from .feed import Feed

LOGGER = logging.getLogger(__name__)

FrameSourceFactory = Callable[[], FrameSource]


class OpenCVFrameSource:
    """Decodes the robot's H.264 video stream with OpenCV.

    ``cv2.VideoCapture`` is not thread-safe: once :meth:`frames` has started,
    only the iterating thread touches the capture, and :meth:`close` merely
    flags it so the capture is released after the pending ``read()`` returns.
    """

    def __init__(self, url: str, *, buffer_size: int = 4, capture: Any = None) -> None:
        if capture is None:
            import cv2

            capture = cv2.VideoCapture(url)
            capture.set(cv2.CAP_PROP_BUFFERSIZE, buffer_size)

        self.url = url
        self._capture = capture
        self._lock = threading.Lock()
        self._closed = False
        self._reading = False

    def frames(self) -> Iterator[Any]:
        with self._lock:
            if self._closed:
                return
            self._reading = True

        try:
            while not self._closed:
                ok, frame = self._capture.read()
                if not ok:
                    if not self._closed:
                        LOGGER.warning("Video stream %s returned no frame; stopping", self.url)
                    return
                if self._closed:
                    return
                yield frame
        finally:
            self._capture.release()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            reading = self._reading

        if not reading:
            self._capture.release()


class VideoIngestor:
    """Runs a :class:`FrameSource` on a background thread while started."""

    def __init__(
        self,
        feed: Feed[Any],
        source_factory: FrameSourceFactory,
        *,
        name: str = "video",
    ) -> None:
        self._feed = feed
        self._source_factory = source_factory
        self._name = name
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._source: Optional[FrameSource] = None
        self.frames_delivered = 0

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name=f"{self._name}-ingestor",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
        LOGGER.info("Starting %s ingestion", self._name)
        thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the ingestion thread to stop; join it when ``timeout`` is given."""

        with self._lock:
            thread, stop_event, source = self._thread, self._stop_event, self._source
            self._thread = None
            self._stop_event = None
            if stop_event is not None:
                stop_event.set()

        if source is not None:
            source.close()

        if (
            thread is not None
            and timeout is not None
            and thread is not threading.current_thread()
        ):
            thread.join(timeout)
            if thread.is_alive():
                LOGGER.warning("%s ingestion thread did not stop in %.1fs", self._name, timeout)

    def _run(self, stop_event: threading.Event) -> None:
        try:
            source = self._source_factory()
        except Exception:
            LOGGER.exception("Failed to open %s source", self._name)
            return

        with self._lock:
            stopped = stop_event.is_set()
            if not stopped:
                self._source = source

        frames: Optional[Iterator[Any]] = None
        try:
            if stopped:
                return
            frames = source.frames()
            for frame in frames:
                if stop_event.is_set():
                    break
                self._feed.notify(frame)
                self.frames_delivered += 1
        except Exception:
            LOGGER.exception("%s ingestion failed", self._name)
        finally:
            if isinstance(frames, Generator):
                # Finish the generator here so the source cleans up on this thread.
                frames.close()
            source.close()
            with self._lock:
                if self._source is source:
                    self._source = None
            LOGGER.info("%s ingestion stopped", self._name)
