"""
Association utilities for multi-object tracking.

This module provides the gated association cost between predicted tracks
and detections, and solves the resulting assignment problem either greedily
(nearest neighbour first) or globally with the Hungarian algorithm.
"""

import numpy as np
from scipy.optimize import linear_sum_assignment
from typing import List, Tuple

# Cost used for ineligible pairs in the global assignment
INELIGIBLE_COST = 1e9


def compute_distance_matrix(
    track_positions: np.ndarray,
    det_positions: np.ndarray
) -> np.ndarray:
    """
    Compute the Euclidean center distance between tracks and detections.

    Non-finite detection components (e.g. a missing depth) are left out of
    the distance, so partial detections are compared on what they carry.

    Args:
        track_positions: Predicted positions, shape (N, P)
        det_positions: Detected positions, shape (M, P)

    Returns:
        Distance matrix of shape (N, M)
    """
    if len(track_positions) == 0 or len(det_positions) == 0:
        return np.empty((len(track_positions), len(det_positions)),
                        dtype=np.float64)

    diff = track_positions[:, None, :] - det_positions[None, :, :]
    diff = np.where(np.isfinite(diff), diff, 0.0)
    return np.sqrt(np.sum(diff ** 2, axis=2))


def compute_gate_mask(
    distances: np.ndarray,
    track_boxes: np.ndarray,
    det_boxes: np.ndarray,
    dist_threshold: float,
    center_threshold: float,
    area_threshold: float,
    body_ratio: float
) -> np.ndarray:
    """
    Evaluate every association gate for all (track, detection) pairs.

    Args:
        distances: Center distances, shape (N, M)
        track_boxes: Predicted [cx, cy, w, h] per track, shape (N, 4)
        det_boxes: Detected [cx, cy, w, h] per detection, shape (M, 4)
        dist_threshold: Maximum center distance
        center_threshold: Margin added around the predicted box that the
            detection center must fall into
        area_threshold: Maximum ratio between the larger and smaller area
        body_ratio: Maximum relative change of the aspect ratio

    Returns:
        Boolean matrix of shape (N, M), True where a pair is eligible
    """
    n, m = len(track_boxes), len(det_boxes)
    if n == 0 or m == 0:
        return np.zeros((n, m), dtype=bool)

    eligible = distances <= dist_threshold

    # Center gate: detection center inside the grown predicted box
    dx = np.abs(track_boxes[:, None, 0] - det_boxes[None, :, 0])
    dy = np.abs(track_boxes[:, None, 1] - det_boxes[None, :, 1])
    eligible &= dx <= track_boxes[:, None, 2] / 2 + center_threshold
    eligible &= dy <= track_boxes[:, None, 3] / 2 + center_threshold

    # Area gate
    track_area = track_boxes[:, 2] * track_boxes[:, 3]
    det_area = det_boxes[:, 2] * det_boxes[:, 3]
    positive = (track_area[:, None] > 0) & (det_area[None, :] > 0)
    larger = np.maximum(track_area[:, None], det_area[None, :])
    smaller = np.minimum(track_area[:, None], det_area[None, :])
    with np.errstate(divide='ignore', invalid='ignore'):
        area_ratio = np.where(positive, larger / np.where(positive, smaller, 1.0),
                              np.inf)
    eligible &= area_ratio <= area_threshold

    # Body ratio gate on the aspect ratio (w / h)
    track_ar = track_boxes[:, 2] / np.maximum(track_boxes[:, 3], 1e-6)
    det_ar = det_boxes[:, 2] / np.maximum(det_boxes[:, 3], 1e-6)
    ar_max = np.maximum(track_ar[:, None], det_ar[None, :])
    ar_change = np.abs(track_ar[:, None] - det_ar[None, :]) / np.maximum(ar_max, 1e-6)
    eligible &= ar_change <= body_ratio

    return eligible


def greedy_assignment(
    cost_matrix: np.ndarray,
    eligible: np.ndarray
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Resolve eligible pairs nearest-neighbour first.

    Pairs are accepted in order of increasing cost; ties go to the lower
    row index (rows are expected in increasing track identity).

    Args:
        cost_matrix: Cost matrix of shape (N, M)
        eligible: Boolean eligibility matrix of shape (N, M)

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: List of track indices without matches
        unmatched_detections: List of detection indices without matches
    """
    n, m = cost_matrix.shape
    rows, cols = np.nonzero(eligible)
    order = sorted(zip(cost_matrix[rows, cols], rows, cols))

    matches = []
    used_rows, used_cols = set(), set()
    for _, row, col in order:
        if row in used_rows or col in used_cols:
            continue
        matches.append((int(row), int(col)))
        used_rows.add(row)
        used_cols.add(col)

    unmatched_tracks = [i for i in range(n) if i not in used_rows]
    unmatched_detections = [j for j in range(m) if j not in used_cols]
    return matches, unmatched_tracks, unmatched_detections


def linear_assignment(
    cost_matrix: np.ndarray,
    eligible: np.ndarray
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Solve the assignment over eligible pairs with the Hungarian algorithm.

    Args:
        cost_matrix: Cost matrix of shape (N, M)
        eligible: Boolean eligibility matrix of shape (N, M)

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: List of track indices without matches
        unmatched_detections: List of detection indices without matches
    """
    if cost_matrix.size == 0:
        return (
            [],
            list(range(cost_matrix.shape[0])),
            list(range(cost_matrix.shape[1]))
        )

    gated = np.where(eligible, cost_matrix, INELIGIBLE_COST)
    row_indices, col_indices = linear_sum_assignment(gated)

    matches = []
    unmatched_tracks = set(range(cost_matrix.shape[0]))
    unmatched_detections = set(range(cost_matrix.shape[1]))

    for row, col in zip(row_indices, col_indices):
        if eligible[row, col]:
            matches.append((int(row), int(col)))
            unmatched_tracks.discard(row)
            unmatched_detections.discard(col)

    return matches, sorted(unmatched_tracks), sorted(unmatched_detections)


def associate_detections_to_tracks(
    track_positions: np.ndarray,
    track_boxes: np.ndarray,
    det_positions: np.ndarray,
    det_boxes: np.ndarray,
    dist_threshold: float = 150.0,
    center_threshold: float = 80.0,
    area_threshold: float = 3.0,
    body_ratio: float = 0.5,
    method: str = "greedy"
) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Associate detections to predicted tracks.

    This is the main function called by the tracker to determine which
    detections correspond to which existing tracks. A pair that fails any
    gate is never assigned, whatever its cost.

    Args:
        track_positions: Predicted positions, shape (N, P)
        track_boxes: Predicted [cx, cy, w, h], shape (N, 4)
        det_positions: Detected positions, shape (M, P)
        det_boxes: Detected [cx, cy, w, h], shape (M, 4)
        dist_threshold: Center distance gate
        center_threshold: Bounding-box center gate margin
        area_threshold: Area ratio gate
        body_ratio: Aspect ratio gate
        method: "greedy" or "hungarian"

    Returns:
        matches: List of (track_idx, detection_idx) tuples
        unmatched_tracks: Track indices without matches
        unmatched_detections: Detection indices without matches
    """
    if len(track_positions) == 0:
        return [], [], list(range(len(det_positions)))

    if len(det_positions) == 0:
        return [], list(range(len(track_positions))), []

    distances = compute_distance_matrix(track_positions, det_positions)
    eligible = compute_gate_mask(
        distances, track_boxes, det_boxes,
        dist_threshold=dist_threshold,
        center_threshold=center_threshold,
        area_threshold=area_threshold,
        body_ratio=body_ratio
    )
    if method == "hungarian":
        return linear_assignment(distances, eligible)
    return greedy_assignment(distances, eligible)
