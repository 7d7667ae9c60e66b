#!/usr/bin/env python3
"""
NextQueue 命令行入口 - 操作本地保存的播放队列

负责配置加载、日志设置、组件组装，并执行一条队列命令。
每条命令都是一次外部事件：执行后队列快照被保存，下次运行时恢复。
"""
import argparse
import asyncio
import logging
from typing import List, Optional

from nextqueue.core.dependency_container import create_container
from nextqueue.playback import PlaybackCoordinator
from nextqueue.queue import Track
from nextqueue.utils.config_manager import ConfigManager
from nextqueue.utils.logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    """构建命令行参数解析器"""
    parser = argparse.ArgumentParser(description="NextQueue 播放队列")
    parser.add_argument("--config", default="config/config.yaml", help="配置文件路径")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("show", help="显示队列")

    add = subparsers.add_parser("add", help="添加曲目")
    add.add_argument("track_id")
    add.add_argument("title")
    add.add_argument("--artist")
    add.add_argument("--album")
    add.add_argument("--duration-ms", type=int)
    add.add_argument("--next", action="store_true", help="插入到当前曲目之后")

    remove = subparsers.add_parser("remove", help="移除条目")
    remove.add_argument("queue_id")

    move = subparsers.add_parser("move", help="移动条目")
    move.add_argument("from_index", type=int)
    move.add_argument("to_index", type=int)

    top = subparsers.add_parser("top", help="置顶条目")
    top.add_argument("queue_id")

    play = subparsers.add_parser("play", help="播放指定位置")
    play.add_argument("index", type=int)

    subparsers.add_parser("dedupe", help="移除重复条目")
    subparsers.add_parser("clear", help="清空队列")
    subparsers.add_parser("next", help="下一首")
    subparsers.add_parser("prev", help="上一首")
    subparsers.add_parser("ended", help="模拟当前曲目自然结束")

    repeat = subparsers.add_parser("repeat", help="设置或切换重复模式")
    repeat.add_argument("mode", nargs="?", choices=["none", "one", "all"])

    shuffle = subparsers.add_parser("shuffle", help="设置或切换随机模式")
    shuffle.add_argument("state", nargs="?", choices=["on", "off"])

    return parser


def format_queue(coordinator: PlaybackCoordinator) -> str:
    """把队列状态格式化为文本"""
    state = coordinator.get_state()
    lines = [
        f"重复: {state.repeat_mode.value} | 随机: {'开' if state.shuffle_mode else '关'} | "
        f"共 {len(state.entries)} 首"
    ]
    if not state.entries:
        lines.append("  (队列为空)")
    for index, entry in enumerate(state.entries):
        marker = "▶" if index == state.current_index else " "
        lines.append(f"{marker} {index:>3}. {entry.track}  [{entry.queue_id}]")
    return "\n".join(lines)


async def run_command(coordinator: PlaybackCoordinator, args: argparse.Namespace) -> int:
    """
    执行一条队列命令

    Returns:
        int: 退出代码
    """
    await coordinator.initialize()
    command = args.command

    if command == "add":
        track = Track(
            id=args.track_id,
            title=args.title,
            artist=args.artist,
            album=args.album,
            duration_ms=args.duration_ms
        )
        queue_id = await coordinator.add_track(track, "next" if args.next else "end")
        print(f"已添加: {track} [{queue_id}]")
    elif command == "remove":
        if not await coordinator.remove_entry(args.queue_id):
            print(f"条目不存在: {args.queue_id}")
    elif command == "move":
        if not await coordinator.reorder(args.from_index, args.to_index):
            print("无效的位置")
    elif command == "top":
        if not await coordinator.move_to_top(args.queue_id):
            print(f"条目不存在或已在队首: {args.queue_id}")
    elif command == "play":
        entries = coordinator.get_state().entries
        if 0 <= args.index < len(entries):
            await coordinator.play_entry(entries[args.index].queue_id)
        else:
            print(f"无效的位置: {args.index}")
    elif command == "dedupe":
        print(f"移除了 {await coordinator.remove_duplicates()} 个重复条目")
    elif command == "clear":
        print(f"清空了 {await coordinator.clear_queue()} 个条目")
    elif command in ("next", "prev", "ended"):
        if command == "next":
            entry = await coordinator.skip_next()
        elif command == "prev":
            entry = await coordinator.skip_previous()
        else:
            entry = await coordinator.on_engine_track_ended()
        print(f"正在播放: {entry.track}" if entry else "没有可播放的曲目")
    elif command == "repeat":
        if args.mode:
            mode = await coordinator.set_repeat_mode(args.mode)
        else:
            mode = await coordinator.cycle_repeat_mode()
        print(f"重复模式: {mode.value}")
    elif command == "shuffle":
        if args.state:
            enabled = await coordinator.set_shuffle_mode(args.state == "on")
        else:
            enabled = await coordinator.toggle_shuffle()
        print(f"随机模式: {'开' if enabled else '关'}")

    print(format_queue(coordinator))
    return 0


async def run_with_config(config: ConfigManager, args: argparse.Namespace) -> int:
    """在事件循环中组装组件并执行命令，协调器和持久化的锁属于这个循环"""
    container = create_container(config)
    coordinator = container.resolve("playback_coordinator")
    return await run_command(coordinator, args)


def main(argv: Optional[List[str]] = None) -> int:
    """
    NextQueue 主入口函数。

    Returns:
        int: 退出代码（0表示成功，1表示错误）
    """
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config)
    except FileNotFoundError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger("nextqueue").error(f"❌ 配置文件错误: {e}")
        logging.getLogger("nextqueue").error("请确保 config/config.yaml 文件存在且配置正确")
        return 1
    except Exception as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger("nextqueue").error(f"❌ 配置文件解析失败: {e}")
        return 1

    setup_logger(
        log_level=config.get_log_level(),
        log_file=config.get_log_file(),
        max_size=config.get_log_max_size(),
        backup_count=config.get_log_backup_count()
    )
    logger = logging.getLogger("nextqueue")
    logger.debug(f"日志配置完成 - 级别: {config.get_log_level()}, 文件: {config.get_log_file()}")

    try:
        return asyncio.run(run_with_config(config, args))
    except KeyboardInterrupt:
        logger.info("🛑 用户中断")
        return 0
    except Exception as e:
        logger.error(f"❌ 执行命令时发生意外错误: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    exit(main())
