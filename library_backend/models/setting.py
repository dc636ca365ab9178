from sqlalchemy import Column, String, Boolean, Text, Enum
from library_backend.database import Base, UTCDateTime, new_id
from library_backend.models.enums import SettingCategory, SettingDataType
from library_backend.utils.timezone import now_utc

class Setting(Base):
    __tablename__ = "settings"

    id = Column(String(36), primary_key=True, default=new_id)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    category = Column(Enum(SettingCategory, name="setting_category"), nullable=False, index=True)
    data_type = Column(Enum(SettingDataType, name="setting_data_type"), default=SettingDataType.STRING, nullable=False)
    description = Column(Text, nullable=True)
    is_editable = Column(Boolean, default=True, nullable=False)
    default_value = Column(Text, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)
