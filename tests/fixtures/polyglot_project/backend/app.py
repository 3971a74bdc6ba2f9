"""User service."""

from typing import List, Optional

from fastapi import Depends, FastAPI
from pydantic import BaseModel

app = FastAPI()


class User(BaseModel):
    id: int
    name: str
    email: str
    nickname: Optional[str] = None


def get_current_user():
    return None


@app.get("/users/{user_id}", response_model=User)
def read_user(user_id: int):
    """Fetch one user."""
    return load_user(user_id)


def load_user(user_id):
    return User(id=user_id, name="ada", email="ada@example.com")


@app.get("/users", response_model=List[User])
def list_users():
    return []


@app.delete("/users/{user_id}", dependencies=[Depends(get_current_user)])
def delete_user(user_id: int):
    return None
