"""
Database service for matterdesk.

This module provides PostgreSQL connection pooling and query execution:
- ThreadedConnectionPool for efficient connection management
- Connection retry logic with backoff
- Proper connection cleanup with context managers
- Periodic connection health checks
- Translation of driver errors into retryable InfrastructureError
"""

import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from matterdesk.utils.errors import InfrastructureError
from matterdesk.utils.logging_config import get_logger


class ConnectionPoolManager:
    """
    Manages a ThreadedConnectionPool with health monitoring and retry logic.
    """

    def __init__(
        self,
        connection_params: Dict[str, Any],
        min_connections: int = 2,
        max_connections: int = 20,
        connection_timeout: int = 30,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the connection pool manager.

        Args:
            connection_params: Database connection parameters
            min_connections: Minimum number of connections to maintain
            max_connections: Maximum number of connections in pool
            connection_timeout: Connection timeout in seconds
            retry_attempts: Number of attempts when checking out a connection
            retry_delay: Base delay between attempts in seconds
        """
        self.connection_params = connection_params.copy()
        self.connection_params["connect_timeout"] = connection_timeout
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._pool_lock = threading.Lock()
        self._health_check_interval = 300  # 5 minutes
        self._last_health_check: Optional[datetime] = None
        self._failed_connections = 0
        self._total_connections = 0
        self.logger = get_logger("database.pool")

        self._initialize_pool()

    def _initialize_pool(self):
        """Initialize the connection pool with error handling."""
        try:
            with self._pool_lock:
                if self._pool is not None:
                    self._pool.closeall()

                self._pool = pool.ThreadedConnectionPool(
                    minconn=self.min_connections, maxconn=self.max_connections, **self.connection_params
                )
                self.logger.info(
                    "Connection pool initialized successfully",
                    extra={
                        "event": "pool_initialized",
                        "min_connections": self.min_connections,
                        "max_connections": self.max_connections,
                    },
                )

        except psycopg2.Error as e:
            self.logger.error(
                "Failed to initialize connection pool",
                extra={"event": "pool_init_failed", "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            raise InfrastructureError("Database unavailable", details={"stage": "pool_init"}) from e

    def _is_connection_healthy(self, conn) -> bool:
        """Check if a connection is healthy by executing a simple query."""
        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            return True
        except psycopg2.Error as e:
            self.logger.warning(
                "Connection health check failed",
                extra={"event": "health_check_failed", "error": str(e), "error_type": type(e).__name__},
            )
            return False

    def _perform_health_check(self):
        """Perform periodic health check on the connection pool."""
        current_time = datetime.now()

        if self._last_health_check is not None and current_time - self._last_health_check <= timedelta(
            seconds=self._health_check_interval
        ):
            return

        self._last_health_check = current_time
        self.logger.debug("Performing connection pool health check", extra={"event": "health_check_start"})

        conn = self._checkout()
        if conn is None:
            self._initialize_pool()
            return

        healthy = self._is_connection_healthy(conn)
        self.return_connection(conn, close=not healthy)
        if not healthy:
            self.logger.warning(
                "Unhealthy connection detected, reinitializing pool", extra={"event": "pool_reinit_unhealthy"}
            )
            self._initialize_pool()

    def _checkout(self):
        for attempt in range(self.retry_attempts):
            try:
                with self._pool_lock:
                    if self._pool is None:
                        raise pool.PoolError("connection pool is closed")
                    conn = self._pool.getconn()
                self._total_connections += 1
                return conn

            except (psycopg2.Error, pool.PoolError) as e:
                self._failed_connections += 1
                self.logger.warning(
                    "Connection attempt failed",
                    extra={
                        "event": "connection_attempt_failed",
                        "attempt": attempt + 1,
                        "max_attempts": self.retry_attempts,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )

                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay * (attempt + 1))

        self.logger.error(
            "All connection attempts failed",
            extra={
                "event": "all_connection_attempts_failed",
                "attempts": self.retry_attempts,
                "failed_connections": self._failed_connections,
            },
        )
        return None

    def get_connection(self):
        """
        Get a connection from the pool with retry logic.

        Returns:
            Database connection or None if all attempts fail
        """
        self._perform_health_check()
        return self._checkout()

    def return_connection(self, conn, close: bool = False):
        """Return a connection to the pool."""
        try:
            with self._pool_lock:
                if self._pool and conn:
                    self._pool.putconn(conn, close=close)
        except (psycopg2.Error, pool.PoolError) as e:
            self.logger.error(
                "Failed to return connection to pool",
                extra={"event": "connection_return_failed", "error": str(e), "error_type": type(e).__name__},
            )

    def close_all_connections(self):
        """Close all connections in the pool."""
        with self._pool_lock:
            if self._pool:
                self._pool.closeall()
                self._pool = None
                self.logger.info("All connections closed", extra={"event": "all_connections_closed"})

    def get_pool_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        return {
            "min_connections": self.min_connections,
            "max_connections": self.max_connections,
            "total_connections_created": self._total_connections,
            "failed_connections": self._failed_connections,
            "last_health_check": self._last_health_check,
            "pool_initialized": self._pool is not None,
        }


class DatabaseConnection:
    """
    Pooled PostgreSQL access used by the repositories.
    """

    def __init__(
        self,
        host="localhost",
        port=5432,
        database="matterdesk",
        user="postgres",
        password="postgres",
        min_connections=2,
        max_connections=20,
        connection_timeout=30,
    ):
        self.connection_params = {"host": host, "port": port, "database": database, "user": user, "password": password}

        self.pool_manager = ConnectionPoolManager(
            connection_params=self.connection_params,
            min_connections=min_connections,
            max_connections=max_connections,
            connection_timeout=connection_timeout,
        )

        self.logger = get_logger("database.connection")
        self.logger.info(
            "DatabaseConnection initialized",
            extra={
                "event": "db_connection_init",
                "database": database,
                "host": host,
                "port": port,
                "min_connections": min_connections,
                "max_connections": max_connections,
            },
        )

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting and properly cleaning up database connections.

        Yields:
            Database connection with automatic cleanup

        Raises:
            InfrastructureError: If no connection could be checked out
        """
        conn = self.pool_manager.get_connection()
        if conn is None:
            raise InfrastructureError("Database unavailable", details={"stage": "checkout"})
        broken = False
        try:
            yield conn
        except psycopg2.Error:
            broken = bool(conn.closed)
            if not broken:
                conn.rollback()
            raise
        finally:
            self.pool_manager.return_connection(conn, close=broken)

    def execute_query(
        self, query: str, params: Optional[Union[tuple, dict]] = None, fetch_one: bool = False, fetch_all: bool = True
    ) -> Any:
        """
        Execute a query in its own transaction.

        Args:
            query: SQL query to execute
            params: Query parameters
            fetch_one: Return single row
            fetch_all: Return all rows

        Returns:
            Query results based on fetch parameters

        Raises:
            InfrastructureError: On any driver error
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                    cursor.execute(query, params)

                    if fetch_one:
                        result = cursor.fetchone()
                    elif fetch_all:
                        result = cursor.fetchall()
                    else:
                        result = None

                conn.commit()
                return result

        except psycopg2.Error as e:
            self.logger.error(
                "Database query error",
                extra={
                    "event": "query_error",
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "query": query[:200] + "..." if len(query) > 200 else query,
                    "params_provided": params is not None,
                },
                exc_info=True,
            )
            raise InfrastructureError("Database query failed", details={"error_type": type(e).__name__}) from e

    def test_connection(self) -> bool:
        """
        Test database connectivity.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            return self.execute_query("SELECT 1 AS ok", fetch_one=True) is not None
        except InfrastructureError:
            return False

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        return self.pool_manager.get_pool_stats()

    def close_all_connections(self):
        """Close all connections in the pool."""
        self.pool_manager.close_all_connections()


def create_database_connection(config_class=None, **kwargs) -> DatabaseConnection:
    """
    Factory function to create a DatabaseConnection from a config class.

    Args:
        config_class: Configuration class with a get_database_config() classmethod
        **kwargs: Overrides for the connection parameters

    Returns:
        DatabaseConnection instance
    """
    params: Dict[str, Any] = {}
    if config_class is not None:
        params.update(config_class.get_database_config())
    params.update(kwargs)
    return DatabaseConnection(**params)
