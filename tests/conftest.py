"""
Shared fixtures: in-memory database, local storage and fake providers.
"""

import asyncio
import io
import itertools
import uuid
from datetime import datetime, timedelta

import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from app.core.database import init_db, make_engine
from app.models.asset import Product, ProductAsset
from app.models.job import Job, JobStatus
from app.models.model3d import User3DModel
from app.models.wallet import UserWallet
from app.services.removebg import RemoveBgService
from app.services.replicate_client import PredictionState, ReplicateService
from app.services.storage import StorageService
from app.workers.base import JobServices
from app.workers.dispatcher import Dispatcher

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def png_bytes(color=(220, 40, 40, 255), size=(16, 16)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeStorage(StorageService):
    """Local storage whose http(s) downloads are served from a dict."""

    def __init__(self, base_path):
        super().__init__(base_path=str(base_path))
        self.remote = {}
        self.downloads = []

    async def download_bytes(self, url: str) -> bytes:
        if url in self.remote:
            self.downloads.append(url)
            result = self.remote[url]
            if isinstance(result, BaseException):
                raise result
            return result
        return await super().download_bytes(url)


class FakeReplicate(ReplicateService):
    """
    Scripted Replicate.

    run_results: model -> output, exception, or a list of those consumed in order.
    Predictions start in `starting` until finish() is called.
    """

    def __init__(self):
        super().__init__(client=object())
        self.run_results = {}
        self.predictions = {}
        self.runs = []
        self.created = []

    async def run(self, model, model_input):
        self.runs.append((model, model_input))
        result = self.run_results.get(model)
        if isinstance(result, list):
            result = result.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def create_prediction(self, model, model_input):
        self.created.append((model, model_input))
        prediction = PredictionState(id=f"pred-{len(self.created)}", status="starting")
        self.predictions[prediction.id] = prediction
        return prediction

    async def get_prediction(self, prediction_id):
        return self.predictions[prediction_id]

    def finish(self, prediction_id, output=None, status="succeeded", error=None):
        self.predictions[prediction_id] = PredictionState(prediction_id, status, output, error)


class FakeRemoveBg(RemoveBgService):

    def __init__(self, result=None):
        super().__init__(api_key="test-key")
        self.result = result
        self.calls = []

    async def remove_background(self, image_url):
        self.calls.append(image_url)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class FakeClock:
    """Advances one second per reading."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        self.now += 1.0
        return self.now


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return FakeStorage(tmp_path / "uploads")


@pytest.fixture
def replicate_fake():
    return FakeReplicate()


@pytest.fixture
def removebg_fake():
    return FakeRemoveBg(result=png_bytes((0, 0, 0, 0)))


@pytest.fixture
def services(replicate_fake, removebg_fake, storage):
    return JobServices(
        replicate=replicate_fake,
        removebg=removebg_fake,
        storage=storage,
        clock=FakeClock(),
        max_requeues=5,
    )


@pytest.fixture
def product(db):
    product = Product(id="prod-0001-abcdef", name="Sunset Fox Tee", slug="sunset-fox-tee")
    db.add(product)
    db.commit()
    return product


@pytest.fixture
def make_job(db):
    """Insert a job; each call is one second newer than the last."""
    counter = itertools.count()

    def _make(job_type, product_id="prod-0001-abcdef", input=None, status=JobStatus.QUEUED.value,
              output=None, external_prediction_id=None, job_id=None, created_at=None):
        job = Job(
            id=job_id or f"job-{uuid.uuid4().hex[:8]}",
            product_id=product_id,
            type=job_type,
            status=status,
            input=input or {},
            output=output or {},
            external_prediction_id=external_prediction_id,
            created_at=created_at or BASE_TIME + timedelta(seconds=next(counter)),
        )
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def make_asset(db):
    """Insert a product asset; each call is one second newer than the last."""
    counter = itertools.count()

    def _make(kind, product_id="prod-0001-abcdef", asset_id=None, created_at=None, **fields):
        asset_id = asset_id or f"asset-{uuid.uuid4().hex[:8]}"
        asset = ProductAsset(
            id=asset_id,
            product_id=product_id,
            kind=kind,
            path=f"graphics/test/{kind}/{asset_id}.png",
            url=f"https://cdn.test/{asset_id}.png",
            created_at=created_at or BASE_TIME + timedelta(seconds=next(counter)),
            **fields,
        )
        db.add(asset)
        db.commit()
        return asset

    return _make


@pytest.fixture
def make_wallet(db):
    def _make(user_id="user-1", balance=100):
        wallet = UserWallet(user_id=user_id, itc_balance=balance)
        db.add(wallet)
        db.commit()
        return wallet

    return _make


@pytest.fixture
def make_model3d(db):
    def _make(model_id="m3d-1", user_id="user-1", **fields):
        model = User3DModel(id=model_id, user_id=user_id, prompt="a brave knight", **fields)
        db.add(model)
        db.commit()
        return model

    return _make


@pytest.fixture
def dispatcher(session_factory, services):
    return Dispatcher(session_factory=session_factory, services=services, poll_interval=0.01, batch_size=10)


@pytest.fixture
def tick(dispatcher):
    """Run one dispatcher tick synchronously."""
    def _tick():
        return asyncio.run(dispatcher.tick())

    return _tick


@pytest.fixture
def reload(db):
    """Re-read a row after another session changed it."""
    def _reload(model, key):
        db.expire_all()
        return db.get(model, key)

    return _reload
