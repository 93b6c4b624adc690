# run_tasks_manually.py
import asyncio
import sys
import os

# Хак для корректной работы импортов
sys.path.append(os.getcwd())

from app.core.logging_config import setup_logging
from app.tasks_registry import TASKS


async def main(task_names):
    """
    Поочередно запускает фоновые задачи из реестра.
    Без аргументов запускает все задачи.
    """
    print("--- Manual Task Runner ---")
    unknown = [name for name in task_names if name not in TASKS]
    if unknown:
        print(f"Unknown tasks: {', '.join(unknown)}. Available: {', '.join(TASKS)}")
        return

    names = task_names or list(TASKS)
    for i, name in enumerate(names, start=1):
        task = TASKS[name]
        print(f"\n[{i}/{len(names)}] Running: {name}...")
        if task["is_async"]:
            await task["function"]()
        else:
            # Синхронные задачи выполняем в отдельном потоке, не блокируя event loop
            await asyncio.to_thread(task["function"])
        print("Done.")

    print("\n--- All tasks completed! ---")


if __name__ == "__main__":
    setup_logging()

    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nScript interrupted by user.")
