from fastapi import APIRouter, HTTPException, Response, status, Depends
from backend.models.user import UserCreate, UserLogin
from backend.core.security import get_password_hash, verify_password, create_access_token, get_current_user, require_admin
from backend.db.mongo import Database
from backend.routes.deps import get_database
from datetime import timedelta
from backend.core.config import settings
from fastapi.responses import JSONResponse

auth_router = APIRouter(prefix="/auth", tags=["auth"])

@auth_router.post("/register")
def register(user: UserCreate, db: Database = Depends(get_database), current_user: dict = Depends(require_admin)):
    # CSR and admin profiles are created by an admin
    if db.profiles.find_one({"email": user.email}):
        raise HTTPException(status_code=400, detail="User already exists")

    hashed_pw = get_password_hash(user.password)
    db.profiles.insert_one({
        "email": user.email,
        "hashed_password": hashed_pw,
        "full_name": user.full_name,
        "mobile": user.mobile,
        "role": user.role
    })
    return {"msg": "User registered"}


@auth_router.post("/login")
def login(user: UserLogin, response: Response, db: Database = Depends(get_database)):
    db_user = db.profiles.find_one({"email": user.email})
    if not db_user or not verify_password(user.password, db_user["hashed_password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token(
        data={"sub": db_user["email"], "role": db_user["role"]},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    # Set token in a secure HTTP-only cookie
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=False,  # Change to True in production with HTTPS
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

    return {
        "msg": "Login successful",
        "user": {
            "email": db_user["email"],
            "full_name": db_user["full_name"],
            "role": db_user["role"],
            "mobile": db_user["mobile"]
        }
    }


@auth_router.get("/me")
def me(current_user: dict = Depends(get_current_user)):
    return current_user


@auth_router.get("/users")
def get_all_users(db: Database = Depends(get_database), current_user: dict = Depends(require_admin)):
    users = list(db.profiles.find({}, {"_id": 0, "email": 1, "role": 1, "full_name": 1}))
    return {"users": users}


@auth_router.post("/logout")
def logout(current_user: dict = Depends(get_current_user)):
    response = JSONResponse(content={"msg": "Logged out successfully"}, status_code=status.HTTP_200_OK)
    response.delete_cookie(key="access_token")
    return response


def ensure_admin_profile(db: Database, email: str, password: str):
    """Create the first admin profile from configuration when none exists"""
    if not email or not password:
        return False
    if db.profiles.find_one({"role": "admin"}):
        return False
    db.profiles.insert_one({
        "email": email,
        "hashed_password": get_password_hash(password),
        "full_name": "Administrator",
        "mobile": "",
        "role": "admin"
    })
    return True
