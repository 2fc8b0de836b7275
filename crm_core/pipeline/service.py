"""
Pipeline Service

Loads the board and performs stage transitions: optimistic splice, one store
write, reload from the store on failure. The board always reflects the last
successful write.
"""

from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from structlog import get_logger

from ..clients.db_service import ClientDBService
from .board import PipelineBoard
from .db_service import StageDBService

logger = get_logger()


class ClientNotOnBoardError(ValueError):
    """The client is not on the board (unknown, deleted, or in an unknown stage)."""


@dataclass
class MoveResult:
    moved: bool
    client_id: str
    from_stage_id: Optional[str]
    to_stage_id: Optional[str]
    board: PipelineBoard


class PipelineService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self.tenant_id = tenant_id
        self.stage_service = StageDBService(db)
        self.client_service = ClientDBService(db)
        self.board: Optional[PipelineBoard] = None

    async def load_board(self) -> PipelineBoard:
        stages = await self.stage_service.list_stages(self.tenant_id)
        clients = await self.client_service.list_active(self.tenant_id)
        self.board = PipelineBoard.from_clients(stages, clients)
        return self.board

    async def move_client(
        self,
        client_id: str,
        over_id: str,
    ) -> MoveResult:
        """
        Move a client to the stage ``over_id`` resolves to.

        ``over_id`` is a stage id or the id of a client in the target stage. An
        unresolvable target, or the client's current stage, leaves the board as is.
        On a failed write ``self.board`` is reloaded from the store before re-raising.

        Raises:
            ClientNotOnBoardError: If the client is not on the board
            Exception: Whatever the store write raised, after the board is reloaded
        """
        board = self.board or await self.load_board()

        from_stage_id = board.find_stage_of(client_id)
        if from_stage_id is None:
            raise ClientNotOnBoardError(f"Client '{client_id}' not found on the pipeline")

        to_stage_id = board.resolve_target_stage(over_id)
        if to_stage_id is None or to_stage_id == from_stage_id:
            logger.debug("pipeline_move_skipped", client_id=client_id, over_id=over_id)
            return MoveResult(False, client_id, from_stage_id, from_stage_id, board)

        board.move_client(client_id, from_stage_id, to_stage_id)

        try:
            updated = await self.client_service.update_stage(client_id, self.tenant_id, to_stage_id)
            if not updated:
                raise ClientNotOnBoardError(f"Client '{client_id}' no longer exists")
        except Exception as e:
            logger.warning(
                "pipeline_move_failed",
                tenant_id=self.tenant_id,
                client_id=client_id,
                to_stage_id=to_stage_id,
                error=str(e),
            )
            # Invalidate the optimistic state
            await self.load_board()
            raise

        logger.info(
            "pipeline_client_moved",
            tenant_id=self.tenant_id,
            client_id=client_id,
            from_stage_id=from_stage_id,
            to_stage_id=to_stage_id,
        )

        return MoveResult(True, client_id, from_stage_id, to_stage_id, board)
