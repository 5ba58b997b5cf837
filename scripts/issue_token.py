"""
Token de desarrollo: python scripts/issue_token.py <user-id> [student|teacher|admin] [minutos]
"""
import sys
from datetime import timedelta
from pathlib import Path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path: sys.path.insert(0, str(ROOT))

from app.security import ROLES, create_access_token

def main(argv: list[str]) -> int:
    if not argv or len(argv) > 3:
        print(__doc__.strip())
        return 2
    sub = argv[0]
    role = argv[1] if len(argv) > 1 else "student"
    if role not in ROLES:
        print(f"Rol inválido: {role} (usa {', '.join(ROLES)})")
        return 2
    minutes = int(argv[2]) if len(argv) > 2 else None
    print(create_access_token(sub, role, timedelta(minutes=minutes) if minutes else None))
    return 0

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
