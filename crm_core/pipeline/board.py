"""
Pipeline Board

In-memory kanban state: one ordered column of clients per stage. Moves are
list splices applied before the store is written; the service reloads the
board when that write fails.
"""

from typing import Optional

from ..clients.models import Client
from .models import ClientStage


class PipelineBoard:
    def __init__(self, stages: list[ClientStage]):
        self.stages = sorted(stages, key=lambda stage: stage.position)
        self.columns: dict[str, list[Client]] = {stage.stage_id: [] for stage in self.stages}

    @classmethod
    def from_clients(cls, stages: list[ClientStage], clients: list[Client]) -> "PipelineBoard":
        """Place clients by ``stage_id``; clients of unknown stages are left off the board."""
        board = cls(stages)
        for client in clients:
            if client.stage_id in board.columns:
                board.columns[client.stage_id].append(client)
        return board

    def get_stage(self, stage_id: str) -> Optional[ClientStage]:
        for stage in self.stages:
            if stage.stage_id == stage_id:
                return stage
        return None

    def find_client(self, client_id: str) -> Optional[Client]:
        for clients in self.columns.values():
            for client in clients:
                if client.client_id == client_id:
                    return client
        return None

    def find_stage_of(self, client_id: str) -> Optional[str]:
        for stage_id, clients in self.columns.items():
            if any(client.client_id == client_id for client in clients):
                return stage_id
        return None

    def resolve_target_stage(self, over_id: str) -> Optional[str]:
        """
        Stage a drop lands in.

        ``over_id`` may be a stage id or the id of a client already on the board,
        meaning that client's stage. Anything else resolves to None.
        """
        if over_id in self.columns:
            return over_id
        return self.find_stage_of(over_id)

    def move_client(self, client_id: str, from_stage_id: str, to_stage_id: str) -> bool:
        """
        Splice a client out of ``from_stage_id`` and append it to ``to_stage_id``.

        Returns:
            False when the client is not in the source column or the target is unknown
        """
        source = self.columns.get(from_stage_id)
        target = self.columns.get(to_stage_id)
        if source is None or target is None:
            return False

        for index, client in enumerate(source):
            if client.client_id == client_id:
                moved = source.pop(index)
                target.append(moved.model_copy(update={"stage_id": to_stage_id}))
                return True

        return False

    def add_client(self, client: Client) -> bool:
        column = self.columns.get(client.stage_id)
        if column is None:
            return False
        column.insert(0, client)
        return True

    def update_client(self, client: Client) -> bool:
        """Replace a client in place, moving it if its stage changed."""
        current_stage_id = self.find_stage_of(client.client_id)
        if current_stage_id is None:
            return False

        if current_stage_id != client.stage_id:
            self.remove_client(client.client_id)
            return self.add_client(client)

        column = self.columns[current_stage_id]
        for index, existing in enumerate(column):
            if existing.client_id == client.client_id:
                column[index] = client
                break
        return True

    def remove_client(self, client_id: str) -> bool:
        for clients in self.columns.values():
            for index, client in enumerate(clients):
                if client.client_id == client_id:
                    clients.pop(index)
                    return True
        return False

    def total_clients(self) -> int:
        return sum(len(clients) for clients in self.columns.values())
