# Copyright (C) 2025 Gil Benezer
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Closed-Loop Pole Worker

Off-thread computation of the closed-loop poles of a plant P(s) and a
controller K(s) under unity feedback. The poles are the roots of the
characteristic polynomial

    phi(s) = P_den(s) K_den(s) + P_num(s) K_num(s)

Protocol
--------
A request is plain data (ClosedLoopPoleRequest: four coefficient lists),
a response is plain data (ClosedLoopPoleResponse). Nothing mutable is
shared between the caller and the worker thread.

Each submission supersedes the earlier ones: a pending request that has
not started is cancelled, and the result of a request that finishes after
a newer submission is discarded (last writer wins).

Usage
-----
>>> with ClosedLoopPoleWorker(callback=print) as worker:
...     future = worker.submit({
...         "plant_num": [1.0], "plant_den": [1.0, 1.0],
...         "controller_num": [10.0], "controller_den": [1.0],
...     })
...     future.result()['roots']
[(-11+0j)]
"""

import threading
import warnings
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np

from loopshape.symbolic.expression_nodes import ExpressionNode
from loopshape.symbolic.rationalization import rationalize
from loopshape.types.control_classical import ClosedLoopPoleRequest, ClosedLoopPoleResponse

from .polynomial_roots import (
    RootConvergenceWarning,
    add_polynomials,
    find_roots,
    multiply_polynomials,
    sort_roots,
    strip_polynomial,
)

ResponseCallback = Callable[[ClosedLoopPoleResponse], None]


# ============================================================================
# Pure Computation
# ============================================================================


def characteristic_polynomial(request: ClosedLoopPoleRequest) -> np.ndarray:
    """
    Ascending coefficients of P_den*K_den + P_num*K_num, trailing zeros removed.

    Examples
    --------
    >>> characteristic_polynomial({
    ...     "plant_num": [1.0], "plant_den": [0.0, 1.0],
    ...     "controller_num": [2.0], "controller_den": [1.0],
    ... })
    array([2.+0.j, 1.+0.j])
    """
    phi = add_polynomials(
        multiply_polynomials(request["plant_den"], request["controller_den"]),
        multiply_polynomials(request["plant_num"], request["controller_num"]),
    )
    return np.array(strip_polynomial(phi))


def compute_closed_loop_poles(request: ClosedLoopPoleRequest) -> ClosedLoopPoleResponse:
    """
    Closed-loop poles of one request, never raising.

    Returns
    -------
    ClosedLoopPoleResponse
        {'success': True, 'roots': [...], 'converged': bool} or
        {'success': False, 'error': message}
    """
    try:
        phi = characteristic_polynomial(request)
        if np.all(np.abs(phi) == 0):
            raise ValueError("Characteristic polynomial is identically zero")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RootConvergenceWarning)
            result = find_roots(phi)
    except (KeyError, TypeError, ValueError) as e:
        return {"success": False, "error": str(e)}

    return {
        "success": True,
        "roots": sort_roots(result["roots"]),
        "converged": result["converged"],
    }


def pole_request(plant: ExpressionNode, controller: ExpressionNode) -> ClosedLoopPoleRequest:
    """
    Serialize a plant and a controller expression into a worker request.

    Raises
    ------
    NotRationalError
        If either expression is not rational in s
    """
    P = rationalize(plant)
    K = rationalize(controller)
    return {
        "plant_num": [float(np.real(c)) for c in P["numerator"]],
        "plant_den": [float(np.real(c)) for c in P["denominator"]],
        "controller_num": [float(np.real(c)) for c in K["numerator"]],
        "controller_den": [float(np.real(c)) for c in K["denominator"]],
    }


# ============================================================================
# Worker
# ============================================================================


class ClosedLoopPoleWorker:
    """
    Single background thread computing closed-loop poles, latest request wins.

    Parameters
    ----------
    callback : Optional[ResponseCallback]
        Called on the worker thread with every response that is still
        current when it completes; stale and cancelled requests never
        reach it

    Examples
    --------
    >>> worker = ClosedLoopPoleWorker()
    >>> first = worker.submit(request_a)
    >>> second = worker.submit(request_b)   # request_a is superseded
    >>> second.result()['success']
    True
    >>> worker.latest_response['request_id'] == 2
    True
    >>> worker.shutdown()
    """

    def __init__(self, callback: Optional[ResponseCallback] = None):
        self.callback = callback
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="closed-loop-poles")
        self._lock = threading.Lock()
        self._latest_id = 0
        self._pending: Optional[Future] = None
        self._latest_response: Optional[ClosedLoopPoleResponse] = None

    @property
    def latest_id(self) -> int:
        """Sequence number of the most recent submission."""
        return self._latest_id

    @property
    def latest_response(self) -> Optional[ClosedLoopPoleResponse]:
        """Response of the most recent request that completed while current."""
        return self._latest_response

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest_id

    def submit(self, request: ClosedLoopPoleRequest) -> Future:
        """
        Queue a request, superseding every earlier one.

        Returns
        -------
        Future
            Resolves to the ClosedLoopPoleResponse of this request (with
            its request_id), even if it was superseded while running
        """
        with self._lock:
            self._latest_id += 1
            request_id = self._latest_id
            if self._pending is not None and not self._pending.done():
                self._pending.cancel()
            future = self._executor.submit(self._run, request_id, request)
            self._pending = future
        future.add_done_callback(self._deliver)
        return future

    def _run(self, request_id: int, request: ClosedLoopPoleRequest) -> ClosedLoopPoleResponse:
        response = compute_closed_loop_poles(request)
        response["request_id"] = request_id
        return response

    def _deliver(self, future: Future):
        if future.cancelled():
            return
        response = future.result()
        with self._lock:
            if not self.is_current(response["request_id"]):
                return
            self._latest_response = response
        if self.callback is not None:
            self.callback(response)

    def shutdown(self, wait: bool = True):
        """Stop the worker thread; pending requests are cancelled."""
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False


# ============================================================================
# Module Exports
# ============================================================================

__all__ = [
    "characteristic_polynomial",
    "compute_closed_loop_poles",
    "pole_request",
    "ClosedLoopPoleWorker",
]
