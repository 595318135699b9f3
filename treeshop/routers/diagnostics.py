# treeshop/routers/diagnostics.py
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from treeshop.db import get_db
from treeshop.services.integrity import find_orphaned_references

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


@router.get("/orphans")
def orphaned_references(db: Session = Depends(get_db)) -> List[dict]:
    return [asdict(ref) for ref in find_orphaned_references(db)]
