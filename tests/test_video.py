import threading
import time

from robomaster_link.feed import Feed
from robomaster_link.video import OpenCVFrameSource, VideoIngestor


class ListFrameSource:
    def __init__(self, frames) -> None:
        self._frames = list(frames)
        self.closed = threading.Event()

    def frames(self):
        for frame in self._frames:
            if self.closed.is_set():
                return
            yield frame
        self.closed.wait(5.0)

    def close(self) -> None:
        self.closed.set()


def test_ingestor_publishes_frames_until_stopped():
    feed: Feed[int] = Feed("video")
    received: list[int] = []
    done = threading.Event()

    def on_frame(frame: int) -> None:
        received.append(frame)
        if len(received) == 3:
            done.set()

    feed.subscribe(on_frame)
    source = ListFrameSource([1, 2, 3])
    ingestor = VideoIngestor(feed, lambda: source)

    ingestor.start()
    ingestor.start()
    assert done.wait(1.0)
    assert ingestor.is_running

    ingestor.stop(timeout=1.0)

    assert not ingestor.is_running
    assert source.closed.is_set()
    assert received == [1, 2, 3]
    assert ingestor.frames_delivered == 3


def test_ingestor_can_restart_with_fresh_source():
    feed: Feed[str] = Feed("video")
    sources: list[ListFrameSource] = []

    def factory() -> ListFrameSource:
        source = ListFrameSource(["frame"])
        sources.append(source)
        return source

    ingestor = VideoIngestor(feed, factory)
    ingestor.start()
    ingestor.stop(timeout=1.0)
    ingestor.start()
    ingestor.stop(timeout=1.0)

    assert len(sources) == 2
    assert all(source.closed.is_set() for source in sources)


def test_failing_source_factory_ends_thread():
    def factory():
        raise OSError("no decoder")

    ingestor = VideoIngestor(Feed("video"), factory)
    ingestor.start()
    ingestor.stop(timeout=1.0)

    assert not ingestor.is_running
    assert ingestor.frames_delivered == 0


class RecordingCapture:
    """Stands in for ``cv2.VideoCapture`` and records which thread releases it."""

    def __init__(self) -> None:
        self.reads = 0
        self.release_threads: list[str] = []
        self.read_after_release = False

    def read(self):
        if self.release_threads:
            self.read_after_release = True
        self.reads += 1
        time.sleep(0.005)
        return True, self.reads

    def release(self) -> None:
        self.release_threads.append(threading.current_thread().name)


def test_capture_is_released_on_the_ingestion_thread():
    capture = RecordingCapture()
    source = OpenCVFrameSource("tcp://192.168.2.1:40921", capture=capture)
    feed: Feed[int] = Feed("video")
    streaming = threading.Event()

    def on_frame(frame: int) -> None:
        if frame >= 3:
            streaming.set()

    feed.subscribe(on_frame)
    ingestor = VideoIngestor(feed, lambda: source)
    ingestor.start()
    assert streaming.wait(1.0)

    ingestor.stop(timeout=1.0)

    assert not ingestor.is_running
    assert capture.release_threads == ["video-ingestor"]
    assert not capture.read_after_release


def test_capture_closed_before_reading_is_released_by_caller():
    capture = RecordingCapture()
    source = OpenCVFrameSource("tcp://192.168.2.1:40921", capture=capture)

    source.close()
    source.close()

    assert list(source.frames()) == []
    assert capture.release_threads == [threading.current_thread().name]
    assert capture.reads == 0
