import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .models import (
    ActivityResponse,
    Card,
    CardCreate,
    CardUpdate,
    Category,
    DashboardStats,
    Difficulty,
    ForecastResponse,
    ReviewRequest,
    ReviewResponse,
)
from .services import FlashcardService

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level.upper(), format='%(asctime)s - %(levelname)s - %(message)s')


@lru_cache
def get_service() -> FlashcardService:
    service = FlashcardService(get_settings())
    if not service.load_data():
        logging.warning("No flashcards loaded on startup, starting with an empty deck.")
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_service()
    yield
    logging.info("Shutting down")


app = FastAPI(title="Lingo SRS API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/stats", response_model=DashboardStats)
def get_stats(learner_id: Optional[str] = None, service: FlashcardService = Depends(get_service)):
    return service.get_stats(learner_id)


@app.get("/cards", response_model=List[Card])
def list_cards(
    category: Optional[Category] = None,
    difficulty: Optional[Difficulty] = None,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    service: FlashcardService = Depends(get_service),
):
    return service.list_cards(category, difficulty, limit, offset)


@app.get("/cards/due", response_model=List[str])
def due_cards(service: FlashcardService = Depends(get_service)):
    return service.due_card_ids()


@app.get("/cards/forecast", response_model=ForecastResponse)
def forecast(days: int = 1, service: FlashcardService = Depends(get_service)):
    return ForecastResponse(days=days, count=service.forecast(days))


@app.get("/cards/{card_id}", response_model=Card)
def get_card(card_id: str, service: FlashcardService = Depends(get_service)):
    card = service.get_card(card_id)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


@app.post("/cards", response_model=Card, status_code=201)
def add_card(card: CardCreate, service: FlashcardService = Depends(get_service)):
    return service.add_card(card)


@app.put("/cards/{card_id}", response_model=Card)
def update_card(card_id: str, updates: CardUpdate, service: FlashcardService = Depends(get_service)):
    card = service.update_card(card_id, updates)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return card


@app.delete("/cards/{card_id}")
def delete_card(card_id: str, service: FlashcardService = Depends(get_service)):
    if not service.delete_card(card_id):
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True}


@app.post("/cards/{card_id}/progress", response_model=ReviewResponse)
def review_card(card_id: str, request: ReviewRequest, service: FlashcardService = Depends(get_service)):
    # Out-of-range quality is clamped rather than rejected
    card = service.review_card(card_id, request.quality)
    if card is None:
        raise HTTPException(status_code=404, detail="Card not found")
    return ReviewResponse(
        id=card.id,
        interval=card.interval,
        repetitions=card.repetitions,
        ease_factor=card.ease_factor,
        due_at=card.due_at,
    )


@app.post("/learners/{learner_id}/activity", response_model=ActivityResponse)
def record_activity(learner_id: str, service: FlashcardService = Depends(get_service)):
    state = service.record_activity(learner_id)
    return ActivityResponse(learner_id=learner_id, streak=state.streak, last_active_at=state.last_active_at)


@app.post("/reset-progress")
def reset_progress(service: FlashcardService = Depends(get_service)) -> Dict[str, int]:
    return {"reset": service.reset_progress()}
