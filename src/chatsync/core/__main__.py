"""CLI 入口模块 -- python -m chatsync.core <command>

支持的命令：
  add-user <full_name> <email>  写入一个用户（通常由外部账号服务同步）
  list-users                    列出所有用户
"""

import asyncio
import sys
from datetime import UTC, datetime

from ulid import ULID

from .config import get_db_path, get_media_dir
from .models.user import User


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m chatsync.core <command>")
        print("命令:")
        print("  add-user <full_name> <email>  写入一个用户")
        print("  list-users                    列出所有用户")
        sys.exit(1)

    command = sys.argv[1]

    if command == "add-user":
        if len(sys.argv) < 4:
            print("用法: python -m chatsync.core add-user <full_name> <email>")
            sys.exit(1)
        asyncio.run(add_user(sys.argv[2], sys.argv[3]))
    elif command == "list-users":
        asyncio.run(list_users())
    else:
        print(f"未知命令: {command}")
        print("可用命令: add-user, list-users")
        sys.exit(1)


async def add_user(full_name: str, email: str) -> User:
    """写入一个新用户并打印其 ID"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path(), get_media_dir())
    try:
        user = User(
            user_id=str(ULID()),
            full_name=full_name,
            email=email,
            created_at=datetime.now(UTC),
        )
        await store_group.user_store.create_user(user)
        print(f"已创建用户 {user.full_name}: {user.user_id}")
        return user
    finally:
        await store_group.conn.close()


async def list_users() -> list[User]:
    """打印所有用户"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path(), get_media_dir())
    try:
        users = await store_group.user_store.list_users()
        print(f"数据库路径: {get_db_path()}")
        for user in users:
            print(f"{user.user_id}  {user.full_name}  {user.email}")
        return users
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
