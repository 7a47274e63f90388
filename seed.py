# seed.py
import logging
from databases import Database
from config import DEFAULT_ADMIN_ID, DEFAULT_ADMIN_SECRET_CODE, DEFAULT_ADMIN_NAME
import crud

logger = logging.getLogger(__name__)

# Neighbourhood delivery prices (IQD) per main zone
SAMPLE_SUB_AREAS = [
    {"name": "حي الحسين", "main_area": "الطويسة", "delivery_price": 3000},
    {"name": "المعقل", "main_area": "الطويسة", "delivery_price": 4000},
    {"name": "حي الجامعة", "main_area": "الجزائر", "delivery_price": 3000},
    {"name": "الجمعيات", "main_area": "الجزائر", "delivery_price": 3500},
    {"name": "حي الخليج", "main_area": "الجبيلة", "delivery_price": 4000},
    {"name": "حي الرسالة", "main_area": "الجنينة", "delivery_price": 3500},
    {"name": "حي الزهراء", "main_area": "الجنينة", "delivery_price": 4000},
    {"name": "شط العرب", "main_area": "التنومة", "delivery_price": 5000},
]

async def create_sample_data(db: Database, accounts):
    """Ensure the default admin exists and seed sub-areas on an empty database"""
    logger.info("🔄 Setting up sample data...")

    admin = await accounts.ensure_default_admin(DEFAULT_ADMIN_ID, DEFAULT_ADMIN_SECRET_CODE, DEFAULT_ADMIN_NAME)
    if admin is None:
        logger.info("✅ Admin already exists")

    sub_area_count = await crud.count_sub_areas(db)
    if sub_area_count == 0:
        for sub_area in SAMPLE_SUB_AREAS:
            await crud.create_sub_area(db, **sub_area)
        logger.info(f"✅ Created {len(SAMPLE_SUB_AREAS)} sample sub-areas")
    else:
        logger.info(f"✅ {sub_area_count} sub-areas already exist")
