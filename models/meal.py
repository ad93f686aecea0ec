# models/meal.py
from db import db


class Meal(db.Model):
    __tablename__ = "meals"

    id       = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name     = db.Column(db.String(160), nullable=False)
    price    = db.Column(db.Numeric(10, 2), nullable=False)
    archived = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
