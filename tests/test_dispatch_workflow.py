import asyncio
import json
import unittest
from unittest.mock import AsyncMock

from dispatch_app.core.errors import (
    BackendError,
    CapacityExceededError,
    CommitError,
    IncompleteAssignmentError,
    PermissionDeniedError,
    VehicleRemovalError,
    WorkflowStateError,
)
from dispatch_app.models.response import NotificationLevel, WorkflowState
from dispatch_app.models.vehicle import VehicleStatus
from dispatch_app.services.dispatch_workflow import DispatchWorkflow
from dispatch_app.services.draft_store import DraftStore
from dispatch_app.services.route_estimator import RouteEstimator
from dispatch_app.services.storage import InMemoryStorage
from tests.factories import FakeRoutingClient, make_request, make_user


class WorkflowTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.request = make_request(count=5, request_id="req-1")
        self.backend = AsyncMock()
        self.backend.get_transport_request_by_id.return_value = self.request
        self.backend.update_transport_request.return_value = self.request.model_copy(update={"status": "DISPATCHED"})
        self.routing = FakeRoutingClient()
        self.estimator = RouteEstimator(self.routing)
        self.storage = InMemoryStorage()
        self.drafts = DraftStore(self.storage, prefix="groupDispatchDraft")

    async def start(self, user=None):
        return await DispatchWorkflow.start(
            "req-1",
            user if user is not None else make_user(),
            self.backend,
            self.estimator,
            self.drafts,
        )

    def fill(self, workflow):
        for i in range(1, 5):
            workflow.assign(f"emp-{i}", "taxi-1")
        workflow.assign("emp-5", "taxi-2")


class TestStart(WorkflowTestCase):
    async def test_permission_refused_before_any_backend_call(self):
        with self.assertRaises(PermissionDeniedError):
            await self.start(user=make_user(permissions=["employees:read"]))
        self.backend.get_transport_request_by_id.assert_not_awaited()

    async def test_anonymous_user_refused(self):
        with self.assertRaises(PermissionDeniedError):
            await DispatchWorkflow.start("req-1", None, self.backend, self.estimator, self.drafts)

    async def test_initial_pool(self):
        workflow = await self.start()

        self.assertEqual(workflow.state, WorkflowState.EDITING)
        self.assertEqual(workflow.minimum_vehicle_count, 2)
        self.assertEqual([v.id for v in workflow.pool], ["taxi-1", "taxi-2"])
        self.assertFalse(workflow.restored_from_draft)
        self.assertIsNone(self.storage.get("groupDispatchDraft-req-1"))

    async def test_draft_is_restored_and_topped_up(self):
        first = await self.start()
        first.add_vehicle()
        first.assign("emp-1", "taxi-3")
        first.assign("emp-2", "taxi-3")

        second = await self.start()

        self.assertTrue(second.restored_from_draft)
        self.assertEqual(second.pool.get("taxi-3").passenger_ids(), ["emp-1", "emp-2"])
        # Empty vehicles are not persisted, the pool is refilled to the minimum
        self.assertEqual(len(second.pool), 2)
        self.assertEqual(second.pool.create_vehicle().id, "taxi-5")

    async def test_draft_with_unknown_passenger_is_discarded(self):
        first = await self.start()
        first.assign("emp-1", "taxi-1")
        raw = json.loads(self.storage.get("groupDispatchDraft-req-1"))
        raw["vehicles"][0]["assigned_passengers"][0]["id"] = "emp-404"
        self.storage.set("groupDispatchDraft-req-1", json.dumps(raw))

        second = await self.start()

        self.assertFalse(second.restored_from_draft)
        self.assertEqual(second.engine.assigned_count(), 0)
        self.assertIsNone(self.storage.get("groupDispatchDraft-req-1"))

    async def test_corrupt_draft_is_ignored(self):
        self.storage.set("groupDispatchDraft-req-1", "][")

        workflow = await self.start()

        self.assertFalse(workflow.restored_from_draft)
        self.assertEqual(len(workflow.pool), 2)


class TestEditing(WorkflowTestCase):
    async def test_every_mutation_autosaves(self):
        workflow = await self.start()

        workflow.assign("emp-1", "taxi-1")
        self.assertEqual(self.drafts.load("req-1").assigned_count, 1)

        workflow.unassign("emp-1", "taxi-1")
        self.assertEqual(self.drafts.load("req-1").vehicles, [])

        workflow.add_vehicle()
        workflow.remove_vehicle("taxi-3")
        self.assertIsNotNone(self.storage.get("groupDispatchDraft-req-1"))

    async def test_rejections_are_notified_without_state_change(self):
        workflow = await self.start()
        self.fill(workflow)
        workflow.unassign("emp-5", "taxi-2")
        workflow.drain_notifications()

        with self.assertRaises(CapacityExceededError):
            workflow.assign("emp-5", "taxi-1")
        with self.assertRaises(VehicleRemovalError):
            workflow.remove_vehicle("taxi-2")

        notices = workflow.drain_notifications()
        self.assertEqual([n.level for n in notices], [NotificationLevel.ERROR, NotificationLevel.ERROR])
        self.assertEqual(workflow.pool.get("taxi-1").occupancy, 4)
        self.assertEqual(len(workflow.pool), 2)

    async def test_view_lists_unassigned_and_warnings(self):
        self.request = make_request(count=3, arrivals=["Site A", "Site B", "Site A"])
        self.backend.get_transport_request_by_id.return_value = self.request
        workflow = await self.start()
        workflow.assign("emp-1", "taxi-1")
        workflow.assign("emp-2", "taxi-1")

        view = workflow.view()

        self.assertEqual(view.assigned_count, 2)
        self.assertFalse(view.all_assigned)
        self.assertEqual([p.id for group in view.unassigned_by_location.values() for p in group], ["emp-3"])
        self.assertIsNotNone(view.vehicles[0].warning)


class TestConfirmation(WorkflowTestCase):
    async def test_incomplete_assignment_stays_editing(self):
        workflow = await self.start()
        workflow.assign("emp-1", "taxi-1")

        with self.assertRaises(IncompleteAssignmentError):
            await workflow.request_confirmation()

        self.assertEqual(workflow.state, WorkflowState.EDITING)
        self.assertEqual(self.routing.calls, [])

    async def test_nothing_to_dispatch(self):
        workflow = await self.start()

        with self.assertRaises(WorkflowStateError):
            await workflow.request_confirmation()
        self.assertEqual(workflow.state, WorkflowState.EDITING)

    async def test_partial_estimation_failure_still_reaches_confirming(self):
        self.request = make_request(count=5, departures=["Lost Road", "B", "C", "D", "E"])
        self.backend.get_transport_request_by_id.return_value = self.request
        self.routing.failing_origins = {"Lost Road"}
        workflow = await self.start()
        self.fill(workflow)

        confirmation = await workflow.request_confirmation()

        self.assertEqual(workflow.state, WorkflowState.CONFIRMING)
        rows = {row.vehicle_id: row for row in confirmation.rows}
        self.assertFalse(rows["taxi-1"].estimated)
        self.assertEqual(rows["taxi-1"].distance, "Not available")
        self.assertTrue(rows["taxi-2"].estimated)
        self.assertEqual(rows["taxi-2"].distance, "5.0 km")
        self.assertIn(NotificationLevel.WARNING, [n.level for n in confirmation.notifications])

    async def test_edits_are_locked_while_confirming_and_cancel_keeps_assignments(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()

        with self.assertRaises(WorkflowStateError):
            workflow.unassign("emp-5", "taxi-2")

        workflow.cancel()
        self.assertEqual(workflow.state, WorkflowState.EDITING)
        self.assertTrue(workflow.all_assigned())

    async def test_stale_estimate_is_dropped(self):
        workflow = await self.start()
        self.fill(workflow)
        gate = asyncio.Event()
        original_route = self.routing.route

        async def slow_route(*args, **kwargs):
            await gate.wait()
            return await original_route(*args, **kwargs)

        self.routing.route = slow_route
        pending = asyncio.create_task(workflow.request_confirmation())
        await asyncio.sleep(0)
        self.assertEqual(workflow.state, WorkflowState.ESTIMATING)

        workflow.unassign("emp-5", "taxi-2")
        workflow.assign("emp-5", "taxi-2")
        gate.set()
        await pending

        self.assertEqual(workflow.state, WorkflowState.CONFIRMING)
        self.assertIsNotNone(workflow.pool.get("taxi-1").route_estimation)
        self.assertIsNone(workflow.pool.get("taxi-2").route_estimation)


class TestCommit(WorkflowTestCase):
    async def test_commit_success(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()

        result = await workflow.confirm()

        self.assertEqual(workflow.state, WorkflowState.COMMITTED)
        self.assertEqual(result.dispatched_vehicles, ["taxi-1", "taxi-2"])
        self.backend.update_transport_request.assert_awaited_once()
        request_id, patch = self.backend.update_transport_request.await_args.args
        self.assertEqual(request_id, "req-1")
        self.assertEqual(patch["status"], "DISPATCHED")
        self.assertEqual(patch["direction"], "HOMETOOFFICE")
        self.assertEqual(len(patch["employeeTransports"]), 5)
        self.assertIn({"id": "emp-5", "virtualVehicleId": "taxi-2"}, patch["employeeTransports"])
        self.assertTrue(all(v.status == VehicleStatus.DISPATCHED for v in workflow.pool.assigned_vehicles()))
        self.assertIsNone(self.storage.get("groupDispatchDraft-req-1"))

        with self.assertRaises(WorkflowStateError):
            workflow.assign("emp-1", "taxi-2")

    async def test_commit_failure_stays_confirming_and_can_retry(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()
        self.backend.update_transport_request.side_effect = BackendError("Backend returned 500", upstream_status=500)

        with self.assertRaises(CommitError):
            await workflow.confirm()

        self.assertEqual(workflow.state, WorkflowState.CONFIRMING)
        self.assertTrue(all(v.status != VehicleStatus.DISPATCHED for v in workflow.pool))
        self.assertIsNotNone(self.storage.get("groupDispatchDraft-req-1"))

        self.backend.update_transport_request.side_effect = None
        await workflow.confirm()
        self.assertEqual(workflow.state, WorkflowState.COMMITTED)

    async def test_confirm_requires_confirming_state(self):
        workflow = await self.start()
        self.fill(workflow)

        with self.assertRaises(WorkflowStateError):
            await workflow.confirm()
        self.backend.update_transport_request.assert_not_awaited()

    async def gated_commit(self, workflow):
        gate = asyncio.Event()
        acknowledged = self.backend.update_transport_request.return_value

        async def slow_update(request_id, patch):
            await gate.wait()
            return acknowledged

        self.backend.update_transport_request.side_effect = slow_update
        pending = asyncio.create_task(workflow.confirm())
        await asyncio.sleep(0)
        return gate, pending

    async def test_cancel_and_edits_are_refused_while_committing(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()
        gate, pending = await self.gated_commit(workflow)

        with self.assertRaises(WorkflowStateError):
            workflow.cancel()
        with self.assertRaises(WorkflowStateError):
            workflow.unassign("emp-5", "taxi-2")
        self.assertEqual(workflow.state, WorkflowState.CONFIRMING)

        gate.set()
        await pending

        self.assertEqual(workflow.state, WorkflowState.COMMITTED)
        self.assertEqual(workflow.pool.get("taxi-2").passenger_ids(), ["emp-5"])
        self.assertTrue(workflow.all_assigned())
        self.assertTrue(all(v.status == VehicleStatus.DISPATCHED for v in workflow.pool.assigned_vehicles()))

    async def test_second_confirm_while_committing_is_refused(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()
        gate, pending = await self.gated_commit(workflow)

        with self.assertRaises(WorkflowStateError):
            await workflow.confirm()

        gate.set()
        await pending
        self.assertEqual(self.backend.update_transport_request.await_count, 1)
        self.assertEqual(workflow.state, WorkflowState.COMMITTED)

    async def test_cancel_is_allowed_again_after_failed_commit(self):
        workflow = await self.start()
        self.fill(workflow)
        await workflow.request_confirmation()
        self.backend.update_transport_request.side_effect = BackendError("Backend returned 500", upstream_status=500)

        with self.assertRaises(CommitError):
            await workflow.confirm()
        workflow.cancel()

        self.assertEqual(workflow.state, WorkflowState.EDITING)
