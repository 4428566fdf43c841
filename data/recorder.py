"""
Cycle recorder for the path planner.
Records ego pose, behavior decisions and emitted trajectories to HDF5.
"""

import h5py
import numpy as np
import json
import threading
import queue
import logging
from pathlib import Path
from typing import Optional, List
from datetime import datetime

from .formats.data_format import CycleRecord

logger = logging.getLogger(__name__)

SCALAR_DATASETS = {
    "cycle/timestamps": np.float64,
    "cycle/ids": np.int64,
    "cycle/durations": np.float32,
    "cycle/num_tracked_objects": np.int32,
    "ego/x": np.float64,
    "ego/y": np.float64,
    "ego/yaw": np.float32,
    "ego/speed": np.float32,
    "ego/s": np.float64,
    "planner/lane": np.int8,
    "planner/reference_speed": np.float32,
    "planner/too_close": np.bool_,
    "planner/lane_change": np.int8,
    "trajectory/reused_count": np.int32,
}
SESSION_DATASET = "cycle/session_ids"


class CycleRecorder:
    """Records planning cycles to HDF5 format."""

    def __init__(self, output_dir: str, recording_name: Optional[str] = None,
                 horizon: int = 50, flush_every: int = 50):
        """
        Initialize cycle recorder.

        Args:
            output_dir: Directory to save recordings
            recording_name: Name for this recording (default: timestamp)
            horizon: Points per trajectory
            flush_every: Buffered cycles before handing off to the writer thread
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        if recording_name is None:
            recording_name = f"planner_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        self.recording_name = recording_name
        self.output_file = self.output_dir / f"{recording_name}.h5"
        self.horizon = int(horizon)
        self.flush_every = max(1, int(flush_every))
        self.flush_queue_warn_threshold = 5

        self.h5_file = h5py.File(self.output_file, 'w')
        self._create_datasets()

        self.cycle_buffer: List[CycleRecord] = []
        self.cycle_buffer_lock = threading.Lock()
        self.h5_lock = threading.Lock()
        self.flush_queue: "queue.Queue[List[CycleRecord]]" = queue.Queue()
        self.flush_stop_event = threading.Event()
        self.cycle_count = 0
        self.flush_thread = threading.Thread(
            target=self._flush_worker,
            name="CycleRecorderFlushWorker",
            daemon=True,
        )
        self.flush_thread.start()

        self.metadata = {
            "recording_start_time": datetime.now().isoformat(),
            "recording_name": recording_name,
            "horizon": self.horizon,
        }

    def _create_datasets(self):
        """Create extensible HDF5 datasets."""
        for name, dtype in SCALAR_DATASETS.items():
            self.h5_file.create_dataset(name, shape=(0,), maxshape=(None,), dtype=dtype)
        self.h5_file.create_dataset(
            SESSION_DATASET, shape=(0,), maxshape=(None,), dtype=h5py.string_dtype()
        )
        self.h5_file.create_dataset(
            "trajectory/points",
            shape=(0, self.horizon, 2),
            maxshape=(None, self.horizon, 2),
            dtype=np.float64,
            compression="gzip",
            compression_opts=4,
            chunks=(64, self.horizon, 2),
        )

    def record_cycle(self, record: CycleRecord):
        """Buffer one cycle; full buffers are written by the flush thread."""
        points = np.asarray(record.trajectory_points, dtype=float)
        if points.shape != (self.horizon, 2):
            raise ValueError(
                f"Trajectory shape {points.shape} does not match recorder horizon ({self.horizon}, 2)"
            )
        with self.cycle_buffer_lock:
            self.cycle_buffer.append(record)
            self.cycle_count += 1
            if len(self.cycle_buffer) >= self.flush_every:
                records = self.cycle_buffer
                self.cycle_buffer = []
                self.flush_queue.put(records)

    def flush(self):
        """Write everything buffered so far and wait for it to land on disk."""
        with self.cycle_buffer_lock:
            if self.cycle_buffer:
                records = self.cycle_buffer
                self.cycle_buffer = []
                self.flush_queue.put(records)
        self.flush_queue.join()
        with self.h5_lock:
            self.h5_file.flush()

    def _flush_worker(self):
        while not self.flush_stop_event.is_set() or not self.flush_queue.empty():
            try:
                records = self.flush_queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if self.flush_queue.qsize() > self.flush_queue_warn_threshold:
                logger.warning(
                    "[RECORDER_QUEUE_BACKLOG] size=%d threshold=%d",
                    self.flush_queue.qsize(),
                    self.flush_queue_warn_threshold,
                )
            try:
                self._write_cycles(records)
            except Exception as e:
                logger.error(f"Failed to write {len(records)} cycles: {e}", exc_info=True)
            finally:
                self.flush_queue.task_done()

    def _write_cycles(self, records: List[CycleRecord]):
        """Append records to the HDF5 datasets."""
        if not records:
            return
        columns = {
            "cycle/timestamps": [r.timestamp for r in records],
            "cycle/ids": [r.cycle_id for r in records],
            "cycle/durations": [r.duration for r in records],
            "cycle/num_tracked_objects": [r.num_tracked_objects for r in records],
            "ego/x": [r.ego_x for r in records],
            "ego/y": [r.ego_y for r in records],
            "ego/yaw": [r.ego_yaw for r in records],
            "ego/speed": [r.ego_speed for r in records],
            "ego/s": [r.ego_s for r in records],
            "planner/lane": [r.lane for r in records],
            "planner/reference_speed": [r.reference_speed for r in records],
            "planner/too_close": [r.too_close for r in records],
            "planner/lane_change": [r.lane_change for r in records],
            "trajectory/reused_count": [r.reused_count for r in records],
        }
        points = np.stack([np.asarray(r.trajectory_points, dtype=float) for r in records])
        session_ids = [r.session_id for r in records]

        with self.h5_lock:
            for name, values in columns.items():
                dataset = self.h5_file[name]
                start = dataset.shape[0]
                dataset.resize((start + len(values),))
                dataset[start:] = np.asarray(values, dtype=SCALAR_DATASETS[name])
            dataset = self.h5_file[SESSION_DATASET]
            start = dataset.shape[0]
            dataset.resize((start + len(session_ids),))
            dataset[start:] = np.asarray(session_ids, dtype=object)
            dataset = self.h5_file["trajectory/points"]
            start = dataset.shape[0]
            dataset.resize((start + len(points), self.horizon, 2))
            dataset[start:] = points

    def close(self):
        """Close the recording file."""
        try:
            with self.cycle_buffer_lock:
                if self.cycle_buffer:
                    records = self.cycle_buffer
                    self.cycle_buffer = []
                    self.flush_queue.put(records)
            self.flush_stop_event.set()
            self.flush_thread.join(timeout=5.0)
        except Exception as e:
            logger.error(f"Error during final flush: {e}", exc_info=True)

        self.metadata["recording_end_time"] = datetime.now().isoformat()
        self.metadata["total_cycles"] = self.cycle_count
        try:
            self.h5_file.attrs["metadata"] = json.dumps(self.metadata, indent=2)
        except Exception as e:
            logger.warning(f"Failed to save metadata: {e}")

        self.h5_file.close()
        logger.info(f"Recording saved to: {self.output_file}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
