"""
Shared test fixtures for the hrsign backend test suite.

Sets up a fresh async SQLite in-memory database per test, overrides the
database and object storage dependencies, and provides companies, users and
auth headers for the hr_admin and employee roles.
"""

import os
import uuid
from io import BytesIO

import factory
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ---- Environment overrides MUST come before any app imports ----
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"

from hrsign.auth.models import Company, User, UserRole  # noqa: E402
from hrsign.auth.service import create_access_token, hash_password  # noqa: E402
from hrsign.common.exceptions import StorageError  # noqa: E402
from hrsign.common.storage import get_storage  # noqa: E402
from hrsign.database import Base, get_db  # noqa: E402
from hrsign.documents.models import Document  # noqa: E402
from hrsign.documents.service import upload_document  # noqa: E402
from hrsign.esign.stamping import PdfStamper  # noqa: E402
from hrsign.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "EmployeePass123!"

# bcrypt is deliberately slow; hash once for every seeded user.
_PASSWORD_HASH = hash_password(TEST_PASSWORD)

_db: dict = {}


def _enable_sqlite_fk(dbapi_conn, _connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# In-memory object storage
# ---------------------------------------------------------------------------
class InMemoryStorage:
    """Dict-backed stand-in for MinioStorage."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_uploads = False

    async def download(self, storage_key: str) -> bytes:
        if storage_key not in self.objects:
            raise StorageError(f"Object not found: {storage_key}")
        return self.objects[storage_key]

    async def upload(self, content: bytes, storage_key: str, content_type: str) -> None:
        if self.fail_uploads:
            raise StorageError("Object storage unavailable")
        self.objects[storage_key] = content
        self.content_types[storage_key] = content_type

    def download_url(self, storage_key: str) -> str:
        return f"http://storage.test/hrsign-documents/{storage_key}?X-Amz-Signature=test"


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Fresh in-memory database for every test."""
    # Every session shares the one in-memory connection, so returning it to the
    # pool must not roll back work another session has not committed yet.
    engine = create_async_engine(
        TEST_DATABASE_URL, echo=False, poolclass=StaticPool, pool_reset_on_return=None
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_fk)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _db["session"] = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield
    _db.clear()
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Session for direct service-layer tests."""
    async with _db["session"]() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Opens extra sessions on the test database, one per simulated caller."""
    return _db["session"]


# ---------------------------------------------------------------------------
# Dependency overrides
# ---------------------------------------------------------------------------
async def _override_get_db():
    async with _db["session"]() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
def storage() -> InMemoryStorage:
    fake = InMemoryStorage()
    app.dependency_overrides[get_storage] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_storage, None)


@pytest.fixture
def stamper() -> PdfStamper:
    return PdfStamper(timeout=30.0)


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def client(storage: InMemoryStorage) -> AsyncClient:
    """Unauthenticated httpx async client wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Companies and users
# ---------------------------------------------------------------------------
async def _create_company(name: str) -> Company:
    company = Company(id=uuid.uuid4(), name=name)
    async with _db["session"]() as session:
        session.add(company)
        await session.commit()
    return company


async def _create_test_user(
    company: Company,
    email: str,
    role: UserRole,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    """Insert a user into the test database and return it."""
    user = User(
        id=uuid.uuid4(),
        company_id=company.id,
        email=email,
        password_hash=_PASSWORD_HASH,
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
    )
    async with _db["session"]() as session:
        session.add(user)
        await session.commit()
        await session.refresh(user)
    return user


def auth_header(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), user.role.value, str(user.company_id))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def company() -> Company:
    return await _create_company("Acme Logistics")


@pytest_asyncio.fixture
async def other_company() -> Company:
    return await _create_company("Globex Retail")


@pytest_asyncio.fixture
async def hr_admin(company: Company) -> User:
    return await _create_test_user(company, "hr@acme-hr.com", UserRole.hr_admin, "Helen", "Ramos")


@pytest_asyncio.fixture
async def employee_a(company: Company) -> User:
    return await _create_test_user(company, "ana@acme-hr.com", UserRole.employee, "Ana", "Lopez")


@pytest_asyncio.fixture
async def employee_b(company: Company) -> User:
    return await _create_test_user(company, "bruno@acme-hr.com", UserRole.employee, "Bruno", "Diaz")


@pytest_asyncio.fixture
async def other_hr_admin(other_company: Company) -> User:
    return await _create_test_user(other_company, "hr@globex-hr.com", UserRole.hr_admin, "Otto", "Brandt")


@pytest_asyncio.fixture
async def outsider(other_company: Company) -> User:
    return await _create_test_user(other_company, "olga@globex-hr.com", UserRole.employee, "Olga", "Nagy")


@pytest_asyncio.fixture
async def hr_headers(hr_admin: User) -> dict[str, str]:
    return auth_header(hr_admin)


@pytest_asyncio.fixture
async def employee_a_headers(employee_a: User) -> dict[str, str]:
    return auth_header(employee_a)


@pytest_asyncio.fixture
async def employee_b_headers(employee_b: User) -> dict[str, str]:
    return auth_header(employee_b)


@pytest_asyncio.fixture
async def other_hr_headers(other_hr_admin: User) -> dict[str, str]:
    return auth_header(other_hr_admin)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
def make_pdf(pages: int = 2, text: str = "Employment contract") -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    for i in range(pages):
        c.setFont("Helvetica", 12)
        c.drawString(72, 770, f"{text} - page {i + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf()


async def _store_document(
    storage: InMemoryStorage,
    company: Company,
    uploader: User,
    filename: str,
    content: bytes,
    mime_type: str,
) -> Document:
    async with _db["session"]() as session:
        doc = await upload_document(
            session,
            storage,
            company_id=company.id,
            uploaded_by=uploader.id,
            filename=filename,
            content=content,
            mime_type=mime_type,
        )
        await session.commit()
    return doc


@pytest_asyncio.fixture
async def document(storage: InMemoryStorage, company: Company, hr_admin: User, pdf_bytes: bytes) -> Document:
    return await _store_document(storage, company, hr_admin, "contract.pdf", pdf_bytes, "application/pdf")


@pytest_asyncio.fixture
async def text_document(storage: InMemoryStorage, company: Company, hr_admin: User) -> Document:
    return await _store_document(
        storage, company, hr_admin, "policy.txt", b"Remote work policy v3\n", "text/plain"
    )


@pytest_asyncio.fixture
async def other_document(
    storage: InMemoryStorage, other_company: Company, other_hr_admin: User, pdf_bytes: bytes
) -> Document:
    return await _store_document(
        storage, other_company, other_hr_admin, "globex.pdf", pdf_bytes, "application/pdf"
    )


# ---------------------------------------------------------------------------
# Factory Boy factories
# ---------------------------------------------------------------------------
class SignatureRequestPayloadFactory(factory.Factory):
    class Meta:
        model = dict

    title = factory.Faker("sentence", nb_words=4)
    message = factory.Faker("paragraph", nb_sentences=2)
    ordered_signing = False
    signers = factory.LazyFunction(list)
