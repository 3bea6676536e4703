"""Typing definitions for LakeIce."""

import numpy as np

ArrayFloat32 = np.ndarray[tuple[int], np.dtype[np.float32]]
ArrayFloat64 = np.ndarray[tuple[int], np.dtype[np.float64]]
ArrayFloat = ArrayFloat32 | ArrayFloat64

ArrayBool = np.ndarray[tuple[int], np.dtype[np.bool_]]
