CATEGORIES = {
    "plastic-surgery": "Plastic Surgery",
    "orthopedic": "Orthopedic",
    "arthroscopy": "Arthroscopy",
    "laparoscopy": "Laparoscopy",
}

CERTIFICATIONS = ("ISO", "CE", "FDA")

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
QUOTATION_STATUSES = ("pending", "reviewed", "quoted", "accepted", "rejected", "expired")

# hospital = any organisation buyer (hospital / clinic)
CUSTOMER_INDIVIDUAL = "individual"
CUSTOMER_HOSPITAL = "hospital"
CUSTOMER_TYPES = (CUSTOMER_INDIVIDUAL, CUSTOMER_HOSPITAL)

SORT_FEATURED = "featured"
SORT_PRICE_LOW = "price-low"
SORT_PRICE_HIGH = "price-high"
SORT_NAME = "name"
SORT_KEYS = (SORT_FEATURED, SORT_PRICE_LOW, SORT_PRICE_HIGH, SORT_NAME)

ORDER_PREFIX = "MS"
QUOTATION_PREFIX = "QT"
