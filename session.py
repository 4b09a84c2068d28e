"""
Pipeline session

Holds the state of one terrain pipeline: the base surface, the latest
magnitude sequence and mesh, and the display name used for export.
Decodes run off the event loop; when several are in flight, the most
recently submitted request that completes wins and older results that
finish later are dropped.
"""
import asyncio
import itertools
import logging
import threading

from config import DEFAULT_TERRAIN
from converter import TerrainConverter, deform_surface
from decoder import decode_samples
from errors import ExportUnavailable
from stl_export import export_binary_stl, stl_filename

logger = logging.getLogger(__name__)


class TerrainSession:
    def __init__(self, config=DEFAULT_TERRAIN, decoder=decode_samples):
        self.config = config
        self.converter = TerrainConverter(config)
        self._decoder = decoder

        self._lock = threading.Lock()
        self._request_ids = itertools.count(1)
        self._applied_request = 0
        self._pending = set()
        self._listeners = []

        self._magnitudes = None
        self._mesh = None
        self._name = None

    @property
    def base(self):
        return self.converter.base

    @property
    def mesh(self):
        return self._mesh

    @property
    def magnitudes(self):
        return self._magnitudes

    @property
    def name(self):
        return self._name

    @property
    def can_export(self):
        return self._mesh is not None

    @property
    def pending_count(self):
        return len(self._pending)

    def subscribe(self, callback):
        """Call callback(mesh) whenever the mesh is replaced; returns an unsubscribe function"""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _next_request(self):
        with self._lock:
            return next(self._request_ids)

    def submit(self, data, name):
        """Start decoding data in a worker thread and return the asyncio task.

        The task resolves to the new mesh, or None when a newer request already
        replaced the mesh. Must be called with a running event loop.
        """
        request_id = self._next_request()
        task = asyncio.ensure_future(self._run(request_id, data, name))
        with self._lock:
            self._pending.add(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task):
        with self._lock:
            self._pending.discard(task)

    async def load(self, data, name):
        return await self.submit(data, name)

    def cancel_pending(self):
        """Cancel every in-flight decode; returns how many were cancelled.

        Safe to call from any thread. Tasks owned by a loop other than the
        one running in the calling thread are cancelled through that loop.
        """
        with self._lock:
            tasks = [task for task in self._pending if not task.done()]

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        cancelled = 0
        for task in tasks:
            loop = task.get_loop()
            if loop is running:
                task.cancel()
            else:
                try:
                    loop.call_soon_threadsafe(task.cancel)
                except RuntimeError:
                    # loop closed since the snapshot, the task is finished
                    continue
            cancelled += 1
        if cancelled:
            logger.info(f"cancelled {cancelled} pending decode(s)")
        return cancelled

    async def _run(self, request_id, data, name):
        logger.info(f"request {request_id}: decoding {name!r} ({len(data)} bytes)")
        samples = await asyncio.to_thread(self._decoder, data, name)
        logger.info(f"request {request_id}: decoded {len(samples)} samples")
        return self._apply(request_id, samples, name)

    def apply_samples(self, samples, name):
        """Synchronously rebuild the terrain from a sample buffer"""
        return self._apply(self._next_request(), samples, name)

    def _apply(self, request_id, samples, name):
        # reduce + deform outside the lock, from the base every time
        magnitudes = self.converter.compute_magnitudes(samples)
        mesh = deform_surface(self.base, magnitudes, self.config.height_scale)

        with self._lock:
            if request_id < self._applied_request:
                logger.info(
                    f"request {request_id}: discarded, superseded by request {self._applied_request}"
                )
                return None
            self._applied_request = request_id
            self._magnitudes = magnitudes
            self._mesh = mesh
            self._name = name or None
            listeners = list(self._listeners)

        logger.info(f"request {request_id}: mesh replaced ({mesh.triangle_count} triangles)")
        for callback in listeners:
            try:
                callback(mesh)
            except Exception:
                logger.exception("mesh listener failed")
        return mesh

    def export_filename(self):
        return stl_filename(self._name)

    def export_stl(self):
        """(filename, bytes) of the current mesh"""
        with self._lock:
            mesh, name = self._mesh, self._name
        if mesh is None:
            raise ExportUnavailable("no terrain has been generated yet")
        filename = stl_filename(name)
        return filename, export_binary_stl(mesh, name=filename[:-len(".stl")])
