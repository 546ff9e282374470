"""Coordinate map snapshot capture with the map surface."""

import threading
import time

from .app_config import get_snapshot_ready_timeout_seconds, get_snapshot_settle_seconds
from .polygon_bounds import bounds_from_region


class SnapshotCaptureError(Exception):
    """The map never became ready, or the capture itself failed."""


class SnapshotCancelled(Exception):
    """The owning view went away before the capture ran."""


def capture_snapshot(capture_fn, bounds, ready_event=None, settle_seconds=None, timeout_seconds=None,
                     region_fn=None, cancel_event=None):
    """
    Capture a snapshot of the map once its tiles have settled.

    With a `ready_event` the capture waits for that signal, bounded by
    `timeout_seconds`. Without one it waits a flat `settle_seconds`. A set
    `cancel_event` aborts the wait.

    Args:
        capture_fn: Callable taking the bounds and returning an image handle
        bounds: BoundingBox that was requested on screen
        ready_event: threading.Event set by the map surface when tiles load
        settle_seconds: Fallback delay without a readiness signal
        timeout_seconds: Deadline for `ready_event`
        region_fn: Callable returning the visible region the map settled on
        cancel_event: threading.Event set when the view is torn down

    Returns:
        dict: {'uri': image handle, 'bounds': bounds actually captured}

    Raises:
        SnapshotCaptureError: readiness timeout or capture failure
        SnapshotCancelled: `cancel_event` was set first
    """
    if bounds is None:
        raise SnapshotCaptureError("No bounds to capture")

    cancel_event = cancel_event or threading.Event()

    if ready_event is not None:
        if timeout_seconds is None:
            timeout_seconds = get_snapshot_ready_timeout_seconds()
        if not _wait_for_either(ready_event, cancel_event, timeout_seconds):
            raise SnapshotCaptureError(f"Map was not ready after {timeout_seconds:.1f}s")
    else:
        if settle_seconds is None:
            settle_seconds = get_snapshot_settle_seconds()
        cancel_event.wait(settle_seconds)

    if cancel_event.is_set():
        raise SnapshotCancelled("Snapshot capture cancelled")

    actual_bounds = None
    if region_fn is not None:
        actual_bounds = bounds_from_region(region_fn())
    if actual_bounds is None:
        actual_bounds = bounds

    try:
        uri = capture_fn(bounds)
    except Exception as e:
        print(f"[ERROR] Snapshot capture failed: {e}")
        raise SnapshotCaptureError(f"Snapshot capture failed: {e}") from e

    if not uri:
        raise SnapshotCaptureError("Snapshot capture returned no image")

    print(f"[INFO] Captured snapshot for bounds "
          f"lat {actual_bounds['min_lat']:.5f}..{actual_bounds['max_lat']:.5f}, "
          f"lng {actual_bounds['min_lng']:.5f}..{actual_bounds['max_lng']:.5f}")
    return {'uri': uri, 'bounds': actual_bounds}


def _wait_for_either(ready_event, cancel_event, timeout_seconds, poll_seconds=0.05):
    """Wait until ready or cancelled; False only on timeout."""
    deadline = time.monotonic() + timeout_seconds
    while True:
        if ready_event.is_set() or cancel_event.is_set():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        ready_event.wait(min(poll_seconds, remaining))
    return ready_event.is_set() or cancel_event.is_set()
