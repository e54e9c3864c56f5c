from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from friendss.database import get_db
from friendss.services.room_service import ParticipantService
from friendss.schemas.participant import ParticipantUpdate, ParticipantResponse
from friendss.schemas.change import ChangeEvent, ChangeKind
from friendss.websocket.handler import ws_handler

router = APIRouter(prefix="/participants", tags=["participants"])


@router.get("/{participant_id}", response_model=ParticipantResponse)
def get_participant(participant_id: str, db: Session = Depends(get_db)):
    service = ParticipantService(db)
    participant = service.get_by_id(participant_id)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    return participant


@router.patch("/{participant_id}", response_model=ParticipantResponse)
async def update_participant(participant_id: str, participant_data: ParticipantUpdate, db: Session = Depends(get_db)):
    service = ParticipantService(db)
    participant = service.update(participant_id, participant_data)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    participant = ParticipantResponse.model_validate(participant)
    await ws_handler.broadcast_change(ChangeEvent.for_participant(ChangeKind.UPDATE, participant))
    return participant


@router.delete("/{participant_id}", status_code=204)
async def delete_participant(participant_id: str, db: Session = Depends(get_db)):
    service = ParticipantService(db)
    participant = service.delete(participant_id)
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    await ws_handler.broadcast_change(ChangeEvent.for_participant(ChangeKind.DELETE, participant))
