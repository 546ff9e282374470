"""Snapshot texture loading and material selection for the 3D view.

Outcomes:
1. textured: snapshot decoded and polygon valid, UV-mapped textured mesh.
2. fallback: polygon valid but the snapshot is missing, undecodable or
   timed out; same geometry with a solid color.
3. placeholder: no usable polygon; fixed-size flat square.
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from urllib.parse import unquote, urlparse

import numpy as np
import requests
from PIL import Image

from .app_config import (
    FALLBACK_MATERIAL_COLOR,
    PLACEHOLDER_MATERIAL_COLOR,
    get_mesh_scale,
    get_placeholder_size,
    get_texture_timeout_seconds,
)
from .mesh_builder import create_placeholder_geometry, create_polygon_geometry

OUTCOME_TEXTURED = 'textured'
OUTCOME_FALLBACK = 'fallback'
OUTCOME_PLACEHOLDER = 'placeholder'

_DECODE_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="texture-decode")


class TextureLoadError(Exception):
    """Snapshot image missing, undecodable, or not decoded in time."""


def _read_source_bytes(source, request_timeout):
    """Fetch raw image bytes from bytes, a file-like, a path, or a URI."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if hasattr(source, 'read'):
        return source.read()
    if not isinstance(source, str):
        raise TextureLoadError(f"Unsupported image source: {type(source).__name__}")

    parsed = urlparse(source)
    if parsed.scheme in ('http', 'https'):
        response = requests.get(source, timeout=request_timeout)
        response.raise_for_status()
        return response.content

    path = unquote(parsed.path) if parsed.scheme == 'file' else source
    if not os.path.isfile(path):
        raise TextureLoadError(f"Image file not found: {path}")
    with open(path, 'rb') as f:
        return f.read()


def decode_image(source, request_timeout=None):
    """
    Decode an image source into an RGBA Pillow image.

    Args:
        source: bytes, file-like object, file path, file:// URI or http(s) URL
        request_timeout: Seconds allowed for an HTTP fetch

    Raises:
        TextureLoadError: if the source cannot be read or decoded
    """
    if request_timeout is None:
        request_timeout = get_texture_timeout_seconds()
    try:
        data = _read_source_bytes(source, request_timeout)
        image = Image.open(BytesIO(data))
        image.load()
    except TextureLoadError:
        raise
    except (OSError, ValueError, requests.RequestException) as e:
        raise TextureLoadError(f"Failed to load image: {e}") from e
    return image.convert('RGBA')


def create_texture(image):
    """Wrap a decoded image with the filtering flags the renderer expects."""
    width, height = image.size
    if width <= 0 or height <= 0:
        raise TextureLoadError("Image has no pixels")
    return {
        'image': image,
        'width': width,
        'height': height,
        'aspect_ratio': height / width,
        'min_filter': 'linear',
        'mag_filter': 'linear',
        'generate_mipmaps': False,
        # Image rows run top-down; flipping puts UV (0, 0) at the bottom-left
        'flip_y': True,
    }


def _decode_texture(source, request_timeout):
    return create_texture(decode_image(source, request_timeout=request_timeout))


class TextureRequest:
    """
    Single-attempt asynchronous texture decode with a deadline.

    The decode runs on a worker thread and races a timeout timer and
    `cancel()`. Whichever settles first wins: success and failure callbacks
    fire at most once between them, and never after `cancel()`.
    """

    def __init__(self, source, timeout_seconds=None, executor=None):
        self.source = source
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else get_texture_timeout_seconds()
        self._executor = executor or _DECODE_EXECUTOR
        self._lock = threading.Lock()
        self._started = False
        self._settled = False
        self._cancelled = False
        self._future = None
        self._timer = None
        self._on_success = None
        self._on_failure = None

    @property
    def cancelled(self):
        return self._cancelled

    @property
    def settled(self):
        return self._settled

    def start(self, on_success, on_failure):
        """
        Begin decoding.

        Args:
            on_success: Called with the texture dict
            on_failure: Called with a TextureLoadError

        Returns:
            TextureRequest: self, for chaining
        """
        with self._lock:
            if self._started:
                raise RuntimeError("TextureRequest already started")
            self._started = True
        self._on_success = on_success
        self._on_failure = on_failure

        if not self.source:
            if self._settle():
                on_failure(TextureLoadError("No image source provided"))
            return self

        self._timer = threading.Timer(self.timeout_seconds, self._handle_timeout)
        self._timer.daemon = True
        self._timer.start()

        self._future = self._executor.submit(_decode_texture, self.source, self.timeout_seconds)
        self._future.add_done_callback(self._handle_done)
        return self

    def cancel(self):
        """Abandon the decode; neither callback will fire. Returns False if already settled."""
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
        if self._future is not None:
            self._future.cancel()
        return True

    def _settle(self):
        with self._lock:
            if self._settled:
                return False
            self._settled = True
        if self._timer is not None:
            self._timer.cancel()
        return True

    def _handle_done(self, future):
        if future.cancelled() or not self._settle():
            return
        error = future.exception()
        if error is None:
            self._on_success(future.result())
        elif isinstance(error, TextureLoadError):
            self._on_failure(error)
        else:
            self._on_failure(TextureLoadError(f"Failed to load image: {error}"))

    def _handle_timeout(self):
        if not self._settle():
            return
        if self._future is not None:
            self._future.cancel()
        self._on_failure(TextureLoadError(
            f"Texture loading timeout after {self.timeout_seconds:.1f}s"
        ))


def load_texture(source, timeout_seconds=None):
    """
    Decode a snapshot into a texture, waiting at most `timeout_seconds`.

    Raises:
        TextureLoadError: on a missing source, decode failure or timeout
    """
    done = threading.Event()
    outcome = {}

    def on_success(texture):
        outcome['texture'] = texture
        done.set()

    def on_failure(error):
        outcome['error'] = error
        done.set()

    TextureRequest(source, timeout_seconds).start(on_success, on_failure)
    done.wait()

    if 'error' in outcome:
        raise outcome['error']
    return outcome['texture']


def _as_points(normalized_coords):
    if normalized_coords is None:
        return None
    return np.asarray(normalized_coords, dtype=np.float64).reshape(-1, 2)


def _placeholder_result(placeholder_size=None):
    size = placeholder_size or get_placeholder_size()
    return {
        'outcome': OUTCOME_PLACEHOLDER,
        'geometry': create_placeholder_geometry(size),
        'material': {'type': 'phong', 'color': PLACEHOLDER_MATERIAL_COLOR, 'side': 'double'},
        'texture': None,
        'error': None,
    }


def _fallback_result(points, scale, error):
    print(f"[WARN] Failed to load map texture, using solid material: {error}")
    return {
        'outcome': OUTCOME_FALLBACK,
        'geometry': create_polygon_geometry(points, 1.0, scale),
        'material': {'type': 'phong', 'color': FALLBACK_MATERIAL_COLOR, 'side': 'double'},
        'texture': None,
        'error': str(error),
    }


def _textured_result(points, scale, texture):
    return {
        'outcome': OUTCOME_TEXTURED,
        'geometry': create_polygon_geometry(points, texture['aspect_ratio'], scale),
        'material': {'type': 'basic', 'map': texture, 'side': 'double'},
        'texture': texture,
        'error': None,
    }


def resolve_material(image_source, normalized_coords, scale=None, timeout_seconds=None, placeholder_size=None):
    """
    Pick geometry and material for the 3D view.

    Args:
        image_source: Snapshot image (see ``decode_image``) or None
        normalized_coords: (N, 2) normalized polygon or None
        scale: Mesh width in model units
        timeout_seconds: Bounded wait for the decode
        placeholder_size: Side of the placeholder square

    Returns:
        dict: {'outcome', 'geometry', 'material', 'texture', 'error'}
    """
    scale = scale or get_mesh_scale()
    points = _as_points(normalized_coords)

    if points is None or len(points) < 3:
        return _placeholder_result(placeholder_size)

    try:
        texture = load_texture(image_source, timeout_seconds)
    except TextureLoadError as e:
        return _fallback_result(points, scale, e)

    return _textured_result(points, scale, texture)


def resolve_material_async(image_source, normalized_coords, on_ready, scale=None, timeout_seconds=None,
                           placeholder_size=None):
    """
    Asynchronous ``resolve_material``.

    `on_ready` receives the result dict once the decode settles. The
    returned TextureRequest (None for the placeholder, which resolves
    immediately) can be cancelled when the owning view goes away; after
    that `on_ready` is never called.
    """
    scale = scale or get_mesh_scale()
    points = _as_points(normalized_coords)

    if points is None or len(points) < 3:
        on_ready(_placeholder_result(placeholder_size))
        return None

    request = TextureRequest(image_source, timeout_seconds)
    return request.start(
        lambda texture: on_ready(_textured_result(points, scale, texture)),
        lambda error: on_ready(_fallback_result(points, scale, error)),
    )


def material_to_payload(result):
    """JSON-ready copy of a resolve result; the decoded image is dropped."""
    texture = result.get('texture')
    texture_info = None
    if texture:
        texture_info = {key: value for key, value in texture.items() if key != 'image'}

    material = dict(result['material'])
    if 'map' in material:
        material['map'] = texture_info

    return {
        'outcome': result['outcome'],
        'material': material,
        'texture': texture_info,
        'error': result.get('error'),
    }
