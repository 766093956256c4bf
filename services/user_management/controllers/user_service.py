import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from shared.auth import authorization, create_access_token, get_password_hash, verify_password
from shared.db import get_db
from shared.errors import ConflictError, InvalidInputError, NotFoundError
from shared.responses import ApiResponse
from services.user_management.models.users import USER_CODE_PREFIXES, User, UserCodeCounter, UserRole
from services.user_management.schemas.users import SignInRequest, SignInResponse, UserCreate, UserOut, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


async def allocate_user_codes(db: AsyncSession, role: UserRole, count: int) -> List[str]:
    """Reserve `count` consecutive codes for `role` with one atomic counter bump."""
    result = await db.execute(
        update(UserCodeCounter)
        .where(UserCodeCounter.role == role)
        .values(last_value=UserCodeCounter.last_value + count)
        .returning(UserCodeCounter.last_value)
    )
    last_value = result.scalar_one_or_none()
    if last_value is None:
        db.add(UserCodeCounter(role=role, last_value=count))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User codes were allocated concurrently, please retry")
        last_value = count

    prefix = USER_CODE_PREFIXES[role]
    return [f"{prefix}{number:03d}" for number in range(last_value - count + 1, last_value + 1)]


async def _raise_on_existing(db: AsyncSession, payloads: List[UserCreate]) -> None:
    usernames = [payload.username for payload in payloads]
    emails = [payload.email for payload in payloads]
    if len(set(usernames)) != len(usernames) or len(set(emails)) != len(emails):
        raise ConflictError("Duplicate username or email in request")

    result = await db.execute(
        select(User).where(or_(User.username.in_(usernames), User.email.in_(emails)))
    )
    existing = result.scalars().all()
    if existing:
        conflicts = ", ".join(f"{user.username} <{user.email}>" for user in existing)
        raise ConflictError(f"Some users already exist: {conflicts}")


async def register_users(db: AsyncSession, payloads: List[UserCreate]) -> List[User]:
    if not payloads:
        raise InvalidInputError("No users provided")
    await _raise_on_existing(db, payloads)

    codes = {}
    for role in dict.fromkeys(UserRole(payload.role.value) for payload in payloads):
        needed = sum(1 for payload in payloads if payload.role.value == role.value)
        codes[role] = iter(await allocate_user_codes(db, role, needed))

    new_users = []
    for payload in payloads:
        role = UserRole(payload.role.value)
        new_users.append(User(
            user_code=next(codes[role]),
            username=payload.username,
            email=payload.email,
            full_name=payload.full_name,
            phone=payload.phone,
            hashed_password=get_password_hash(payload.password),
            role=role,
        ))

    db.add_all(new_users)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User with this username or email already exists")

    logger.info("Registered %d users", len(new_users))
    return new_users


async def update_user(db: AsyncSession, user_id: UUID, payload: UserUpdate) -> User:
    """Apply the supplied fields; id and user_code are never touched, a password is re-hashed."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found!")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    password = changes.pop("password", None)
    if password is not None:
        user.hashed_password = get_password_hash(password)
    if "role" in changes:
        changes["role"] = UserRole(changes["role"].value)
    for key, value in changes.items():
        setattr(user, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User with this username or email already exists")

    logger.info("Updated user %s", user_id)
    return user


# --- SIGN IN ---
@router.post("/signin", response_model=SignInResponse)
async def sign_in(payload: SignInRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).where(or_(User.username == payload.username, User.email == payload.username))
    )
    user = result.scalars().first()

    if not user or not user.is_active or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    token = create_access_token({
        "sub": user.email,
        "role": user.role.value,
        "user_id": str(user.id),
    })
    return SignInResponse(token=token, role=user.role.value)


# --- CREATE USER (any role) ---
@router.post("/users/createUser", response_model=ApiResponse[UserOut], status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("admin")),
):
    users = await register_users(db, [payload])
    return {"success": True, "data": users[0], "message": "User created successfully"}


# --- REGISTER MULTIPLE STUDENTS / TEACHERS ---
@router.post("/users/register-multiple", response_model=ApiResponse[List[UserOut]], status_code=status.HTTP_201_CREATED)
async def register_multiple_users(
    payload: List[UserCreate] = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("teacher")),
):
    invalid = [user.username for user in payload if user.role.value not in (UserRole.STUDENT.value, UserRole.TEACHER.value)]
    if invalid:
        raise InvalidInputError(f"Only students and teachers can be registered in bulk: {', '.join(invalid)}")

    users = await register_users(db, payload)
    return {"success": True, "data": users, "message": "All users registered successfully"}


# --- GET ALL USERS ---
@router.get("/users", response_model=ApiResponse[List[UserOut]])
async def get_all_users(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("admin")),
):
    result = await db.execute(select(User).order_by(User.role, User.full_name))
    return {"success": True, "data": result.scalars().all()}


# --- GET ALL TEACHERS ---
@router.get("/users/getAllTeacher", response_model=ApiResponse[List[UserOut]])
async def get_all_teachers(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("admin")),
):
    result = await db.execute(
        select(User).where(User.role == UserRole.TEACHER).order_by(User.full_name)
    )
    return {"success": True, "data": result.scalars().all()}


# --- GET USER ---
@router.get("/users/{user_id}", response_model=ApiResponse[UserOut])
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("student")),
):
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User is not found!")
    return {"success": True, "data": user}


# --- UPDATE USER ---
@router.put("/users/{user_id}", response_model=ApiResponse[UserOut])
async def update_user_route(
    user_id: UUID,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(authorization("admin")),
):
    user = await update_user(db, user_id, payload)
    return {"success": True, "data": user, "message": "User updated successfully"}
