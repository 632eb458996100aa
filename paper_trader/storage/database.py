"""Database storage for paper-trading wallets."""
from typing import List, Optional
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import (
    Column, String, DateTime, Integer, Numeric, ForeignKey, delete, select
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import AsyncEngine
import structlog

from paper_trader.core.models import Position, TradeRecord, TradeType, Wallet, utc_now
from paper_trader.core.config import database_config

logger = structlog.get_logger(__name__)

Base = declarative_base()


class WalletModel(Base):
    """SQLAlchemy model for wallets."""
    __tablename__ = 'wallets'

    user_id = Column(String, primary_key=True)
    balance_usd = Column(Numeric(36, 18), nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)


class PositionModel(Base):
    """SQLAlchemy model for open positions."""
    __tablename__ = 'positions'

    user_id = Column(String, ForeignKey('wallets.user_id', ondelete='CASCADE'), primary_key=True)
    asset_id = Column(String, primary_key=True)
    symbol = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    quantity = Column(Numeric(36, 18), nullable=False)
    avg_buy_price_usd = Column(Numeric(36, 18), nullable=False)


class TradeModel(Base):
    """SQLAlchemy model for trade history."""
    __tablename__ = 'trades'

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('wallets.user_id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String, nullable=False)
    asset_id = Column(String, nullable=False)
    symbol = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    usd_amount = Column(Numeric(36, 18), nullable=False)
    quantity = Column(Numeric(36, 18), nullable=False)
    price_usd = Column(Numeric(36, 18), nullable=False)
    fee_usd = Column(Numeric(36, 18), default=0)
    realized_pnl_usd = Column(Numeric(36, 18), nullable=True)
    timestamp = Column(DateTime, nullable=False)
    # Position in the wallet history, oldest = 1
    sequence = Column(Integer, nullable=False)


def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _naive_utc(ts: datetime) -> datetime:
    return _as_utc(ts).replace(tzinfo=None)


class Database:
    """Async database interface."""

    def __init__(self, database_url: Optional[str] = None):
        # Convert SQLite URL to async version if needed
        db_url = database_url or database_config.database_url
        if db_url.startswith('sqlite:///') and not db_url.startswith('sqlite+aiosqlite:///'):
            db_url = db_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.database_url = db_url
        self.engine: AsyncEngine = create_async_engine(db_url, echo=database_config.database_echo)
        self.session_maker = async_sessionmaker(self.engine, class_=AsyncSession)

    async def initialize(self):
        """Create tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.initialized", url=self.database_url)

    async def close(self):
        """Close database connection."""
        await self.engine.dispose()

    # Wallet operations
    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        """Load a wallet with its positions and trade history."""
        async with self.session_maker() as session:
            db_wallet = await session.get(WalletModel, user_id)

            if db_wallet is None:
                return None

            positions = (await session.execute(
                select(PositionModel).where(PositionModel.user_id == user_id)
            )).scalars().all()
            trades = (await session.execute(
                select(TradeModel)
                .where(TradeModel.user_id == user_id)
                .order_by(TradeModel.sequence.desc())
            )).scalars().all()

            return Wallet(
                user_id=db_wallet.user_id,
                balance_usd=db_wallet.balance_usd,
                positions={p.asset_id: self._position_from_model(p) for p in positions},
                trades=[self._trade_from_model(t) for t in trades],
                updated_at=_as_utc(db_wallet.updated_at or db_wallet.created_at),
            )

    async def get_or_create_wallet(self, user_id: str, default_balance: Decimal) -> Wallet:
        """Load a wallet, creating an empty one with the default balance."""
        wallet = await self.get_wallet(user_id)
        if wallet is not None:
            return wallet

        wallet = Wallet(user_id=user_id, balance_usd=default_balance)
        await self.save_wallet(wallet)
        logger.info("database.wallet_created", user_id=user_id, balance_usd=str(default_balance))
        return wallet

    async def save_wallet(self, wallet: Wallet):
        """Save a wallet in one transaction.

        Upserts the balance, replaces the stored position set and inserts
        trade records not stored yet. Zero-quantity positions are dropped.
        """
        async with self.session_maker() as session:
            async with session.begin():
                db_wallet = await session.get(WalletModel, wallet.user_id)

                if db_wallet is None:
                    db_wallet = WalletModel(
                        user_id=wallet.user_id,
                        balance_usd=wallet.balance_usd,
                        created_at=_naive_utc(utc_now()),
                        updated_at=_naive_utc(wallet.updated_at),
                    )
                    session.add(db_wallet)
                else:
                    db_wallet.balance_usd = wallet.balance_usd
                    db_wallet.updated_at = _naive_utc(wallet.updated_at)

                await session.execute(
                    delete(PositionModel).where(PositionModel.user_id == wallet.user_id)
                )
                for position in wallet.positions.values():
                    if not position.is_open:
                        continue
                    session.add(PositionModel(
                        user_id=wallet.user_id,
                        asset_id=position.asset_id,
                        symbol=position.symbol,
                        name=position.name,
                        quantity=position.quantity,
                        avg_buy_price_usd=position.avg_buy_price_usd,
                    ))

                stored_ids = set((await session.execute(
                    select(TradeModel.id).where(TradeModel.user_id == wallet.user_id)
                )).scalars().all())
                for index, trade in enumerate(wallet.trades):
                    if trade.id in stored_ids:
                        continue
                    session.add(TradeModel(
                        id=trade.id,
                        user_id=wallet.user_id,
                        type=trade.type.value,
                        asset_id=trade.asset_id,
                        symbol=trade.symbol,
                        name=trade.name,
                        usd_amount=trade.usd_amount,
                        quantity=trade.quantity,
                        price_usd=trade.price_usd,
                        fee_usd=trade.fee_usd,
                        realized_pnl_usd=trade.realized_pnl_usd,
                        timestamp=_naive_utc(trade.timestamp),
                        sequence=len(wallet.trades) - index,
                    ))

    async def delete_wallet(self, user_id: str):
        """Delete a wallet and everything stored with it."""
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(delete(TradeModel).where(TradeModel.user_id == user_id))
                await session.execute(delete(PositionModel).where(PositionModel.user_id == user_id))
                await session.execute(delete(WalletModel).where(WalletModel.user_id == user_id))

    # Trade history operations
    async def get_trades(
        self,
        user_id: str,
        asset_id: Optional[str] = None,
        limit: int = 100
    ) -> List[TradeRecord]:
        """Get trade history, newest first, with optional asset filter."""
        async with self.session_maker() as session:
            query = (
                select(TradeModel)
                .where(TradeModel.user_id == user_id)
                .order_by(TradeModel.sequence.desc())
                .limit(limit)
            )

            if asset_id:
                query = query.where(TradeModel.asset_id == asset_id)

            result = await session.execute(query)
            return [self._trade_from_model(t) for t in result.scalars().all()]

    # Helpers
    def _position_from_model(self, model: PositionModel) -> Position:
        """Convert DB model to Position object."""
        return Position(
            asset_id=model.asset_id,
            symbol=model.symbol,
            name=model.name or "",
            quantity=model.quantity,
            avg_buy_price_usd=model.avg_buy_price_usd,
        )

    def _trade_from_model(self, model: TradeModel) -> TradeRecord:
        """Convert DB model to TradeRecord object."""
        return TradeRecord(
            id=model.id,
            type=TradeType(model.type),
            asset_id=model.asset_id,
            symbol=model.symbol,
            name=model.name or "",
            usd_amount=model.usd_amount,
            quantity=model.quantity,
            price_usd=model.price_usd,
            fee_usd=model.fee_usd or Decimal("0"),
            realized_pnl_usd=model.realized_pnl_usd,
            timestamp=_as_utc(model.timestamp),
        )
