"""
Replay utility for planner cycle recordings.
"""

import json
from pathlib import Path
from typing import Iterator, List, Optional

import h5py

from .recorder import SCALAR_DATASETS, SESSION_DATASET


class CycleReplay:
    """Read back cycles written by CycleRecorder."""

    def __init__(self, recording_file: str):
        """
        Initialize cycle replay.

        Args:
            recording_file: Path to HDF5 recording file
        """
        self.recording_file = Path(recording_file)
        if not self.recording_file.exists():
            raise FileNotFoundError(f"Recording file not found: {recording_file}")

        self.h5_file = h5py.File(self.recording_file, 'r')
        if "metadata" in self.h5_file.attrs:
            self.metadata = json.loads(self.h5_file.attrs["metadata"])
        else:
            self.metadata = {}

    def __len__(self) -> int:
        return int(self.h5_file["cycle/ids"].shape[0])

    def session_ids(self) -> List[str]:
        """Sessions present in the recording, in order of first appearance."""
        return list(dict.fromkeys(self.h5_file[SESSION_DATASET].asstr()[:]))

    def get_cycles(self, session_id: Optional[str] = None) -> Iterator[dict]:
        """
        Iterate recorded cycles.

        Args:
            session_id: Only yield cycles of this planning session

        Yields:
            Dictionary keyed by dataset name (e.g. "planner/lane") plus
            "cycle/session_ids" and "trajectory/points"
        """
        columns = {name: self.h5_file[name][:] for name in SCALAR_DATASETS}
        sessions = self.h5_file[SESSION_DATASET].asstr()[:]
        points = self.h5_file["trajectory/points"]
        for i in range(len(self)):
            if session_id is not None and sessions[i] != session_id:
                continue
            cycle = {name: values[i].item() for name, values in columns.items()}
            cycle[SESSION_DATASET] = str(sessions[i])
            cycle["trajectory/points"] = points[i]
            yield cycle

    def close(self):
        self.h5_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
