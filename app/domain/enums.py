# app/domain/enums.py
import enum


class CouponType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"


class ShippingMethod(str, enum.Enum):
    standard = "standard"
    express = "express"


class CartValueScore(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
