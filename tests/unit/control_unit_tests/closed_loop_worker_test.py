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
Unit Tests for the Closed-Loop Pole Worker

Tests the characteristic polynomial, single-request pole computation and
the latest-request-wins worker thread.
"""

import threading

import numpy as np
import pytest
from numpy.testing import assert_allclose

from loopshape.control.closed_loop_worker import (
    ClosedLoopPoleWorker,
    characteristic_polynomial,
    compute_closed_loop_poles,
    pole_request,
)
from loopshape.symbolic import NotRationalError, parse_expression

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def first_order_request():
    """P = 1/(s+1), K = 10: closed-loop pole at -11."""
    return {
        "plant_num": [1.0],
        "plant_den": [1.0, 1.0],
        "controller_num": [10.0],
        "controller_den": [1.0],
    }


@pytest.fixture
def integrator_request():
    """P = 1/(s(s+1)), K = 5: phi = s^2 + s + 5."""
    return {
        "plant_num": [1.0],
        "plant_den": [0.0, 1.0, 1.0],
        "controller_num": [5.0],
        "controller_den": [1.0],
    }


# ============================================================================
# Single Requests
# ============================================================================


class TestClosedLoopPoles:
    """Test pole computation for one request."""

    def test_characteristic_polynomial(self, integrator_request):
        assert_allclose(characteristic_polynomial(integrator_request), [5.0, 1.0, 1.0])

    def test_characteristic_polynomial_strips_cancelled_terms(self):
        """P = -s/(s+1), K = 1: the s terms cancel."""
        phi = characteristic_polynomial(
            {
                "plant_num": [0.0, -1.0],
                "plant_den": [1.0, 1.0],
                "controller_num": [1.0],
                "controller_den": [1.0],
            }
        )
        assert_allclose(phi, [1.0])

    def test_first_order_pole(self, first_order_request):
        response = compute_closed_loop_poles(first_order_request)

        assert response["success"]
        assert response["converged"]
        assert_allclose(response["roots"], [-11.0], atol=1e-8)

    def test_complex_pair_sorted(self, integrator_request):
        response = compute_closed_loop_poles(integrator_request)
        roots = response["roots"]

        expected_imag = np.sqrt(19.0) / 2
        assert roots[0] == pytest.approx(-0.5 + 1j * expected_imag, abs=1e-8)
        assert roots[1] == pytest.approx(-0.5 - 1j * expected_imag, abs=1e-8)

    def test_zero_polynomial_reports_error(self):
        response = compute_closed_loop_poles(
            {
                "plant_num": [0.0],
                "plant_den": [0.0],
                "controller_num": [1.0],
                "controller_den": [1.0],
            }
        )

        assert not response["success"]
        assert "identically zero" in response["error"]

    def test_malformed_request_reports_error(self):
        response = compute_closed_loop_poles({"plant_num": [1.0]})

        assert not response["success"]
        assert response["error"]

    def test_pole_request_from_expressions(self):
        request = pole_request(parse_expression("1/(s+1)"), parse_expression("10"))

        assert request == {
            "plant_num": [1.0],
            "plant_den": [1.0, 1.0],
            "controller_num": [10.0],
            "controller_den": [1.0],
        }

    def test_pole_request_rejects_delay(self):
        with pytest.raises(NotRationalError):
            pole_request(parse_expression("exp(-s)/(s+1)"), parse_expression("1"))


# ============================================================================
# Worker Thread
# ============================================================================


class TestClosedLoopPoleWorker:
    """Test the background worker protocol."""

    def test_submit_returns_future(self, first_order_request):
        with ClosedLoopPoleWorker() as worker:
            response = worker.submit(first_order_request).result(timeout=10)

        assert response["success"]
        assert response["request_id"] == 1
        assert_allclose(response["roots"], [-11.0], atol=1e-8)

    def test_latest_response_and_callback(self, first_order_request):
        received = []

        with ClosedLoopPoleWorker(callback=received.append) as worker:
            worker.submit(first_order_request).result(timeout=10)

        assert worker.latest_response is not None
        assert worker.latest_response["request_id"] == 1
        assert [r["request_id"] for r in received] == [1]

    def test_last_writer_wins(self, first_order_request, integrator_request):
        received = []

        with ClosedLoopPoleWorker(callback=received.append) as worker:
            worker.submit(first_order_request)
            future = worker.submit(integrator_request)
            future.result(timeout=10)

        assert worker.latest_id == 2
        assert worker.latest_response["request_id"] == 2
        assert received[-1]["request_id"] == 2
        ids = [r["request_id"] for r in received]
        assert ids == sorted(ids)

    def test_stale_result_discarded(self, first_order_request, integrator_request):
        """A request finishing after a newer submission never reaches the callback."""
        gate = threading.Event()
        received = []

        def callback(response):
            received.append(response["request_id"])

        worker = ClosedLoopPoleWorker(callback=callback)
        try:
            # Occupy the single thread so both requests queue behind it
            worker._executor.submit(gate.wait, 10)
            first = worker.submit(first_order_request)
            second = worker.submit(integrator_request)
            gate.set()
            second.result(timeout=10)
        finally:
            worker.shutdown()

        assert first.cancelled()
        assert received == [2]

    def test_is_current(self, first_order_request):
        with ClosedLoopPoleWorker() as worker:
            worker.submit(first_order_request).result(timeout=10)
            assert worker.is_current(1)
            assert not worker.is_current(0)

    def test_failed_request_is_delivered(self):
        received = []

        with ClosedLoopPoleWorker(callback=received.append) as worker:
            worker.submit({"plant_num": [1.0]}).result(timeout=10)

        assert not received[0]["success"]
