from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
from friendss.database import get_db
from friendss.services.room_service import RoomService, ParticipantService
from friendss.schemas.room import RoomCreate, RoomUpdate, RoomResponse
from friendss.schemas.participant import ParticipantCreate, ParticipantResponse
from friendss.schemas.change import ChangeEvent, ChangeKind
from friendss.websocket.handler import ws_handler

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", response_model=RoomResponse, status_code=201)
async def create_room(room_data: RoomCreate, db: Session = Depends(get_db)):
    service = RoomService(db)
    room = RoomResponse.model_validate(service.create(room_data))
    await ws_handler.broadcast_change(ChangeEvent.for_room(ChangeKind.INSERT, room))
    return room


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(room_id: str, db: Session = Depends(get_db)):
    service = RoomService(db)
    room = service.get_by_id(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@router.patch("/{room_id}", response_model=RoomResponse)
async def update_room(room_id: str, room_data: RoomUpdate, db: Session = Depends(get_db)):
    service = RoomService(db)
    room = service.update(room_id, room_data)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    room = RoomResponse.model_validate(room)
    await ws_handler.broadcast_change(ChangeEvent.for_room(ChangeKind.UPDATE, room))
    return room


@router.delete("/{room_id}", status_code=204)
async def delete_room(room_id: str, db: Session = Depends(get_db)):
    service = RoomService(db)
    removed = service.delete(room_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Room not found")
    room, participants = removed
    await ws_handler.broadcast_changes(
        [ChangeEvent.for_room(ChangeKind.DELETE, room)]
        + [ChangeEvent.for_participant(ChangeKind.DELETE, p) for p in participants]
    )


@router.get("/{room_id}/participants", response_model=List[ParticipantResponse])
def list_participants(room_id: str, db: Session = Depends(get_db)):
    service = ParticipantService(db)
    return service.list_by_room(room_id)


@router.post("/{room_id}/participants", response_model=ParticipantResponse, status_code=201)
async def add_participant(room_id: str, participant_data: ParticipantCreate, db: Session = Depends(get_db)):
    if not RoomService(db).get_by_id(room_id):
        raise HTTPException(status_code=404, detail="Room not found")

    service = ParticipantService(db)
    participant = service.create(room_id, participant_data.name, participant_data.is_host)
    participant = ParticipantResponse.model_validate(participant)
    await ws_handler.broadcast_change(ChangeEvent.for_participant(ChangeKind.INSERT, participant))
    return participant
